"""Helpers shared by the object and attachment routers."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from jobboard.access.identity import CallerIdentity
from jobboard.errors import (
    ForeignObjectPath,
    InvalidObjectPath,
    ObjectNotFound,
    PolicyOwnershipConflict,
    StorageUnavailable,
    UploadRejected,
)
from jobboard.storage.config import get_object_store_timeout_seconds
from jobboard.web.security import cache_headers

_log = logging.getLogger("jobboard.web")


def current_caller(request: Request) -> Optional[CallerIdentity]:
    user = getattr(request.state, "user", None)
    return CallerIdentity.from_user(user if isinstance(user, dict) else None)


def json_error(status_code: int, error: str, detail: str | None = None, message: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if detail is not None:
        body["detail"] = detail
    if message is not None:
        body["message"] = message
    return JSONResponse(body, status_code=status_code, headers=cache_headers())


def unauthenticated() -> JSONResponse:
    return json_error(401, "unauthenticated")


def csrf_violation() -> JSONResponse:
    return json_error(403, "forbidden", "csrf_violation")


def not_found() -> JSONResponse:
    # One body for "missing" and "denied"; nothing in it may depend on which.
    return json_error(404, "not_found")


def error_response(exc: Exception) -> JSONResponse:
    """Translate a core exception into the JSON error contract.

    Raises the exception again when it is not part of the taxonomy so the
    framework reports it as a genuine server error.
    """
    if isinstance(exc, ObjectNotFound):
        return not_found()
    if isinstance(exc, (UploadRejected, InvalidObjectPath)):
        return json_error(400, "bad_request", exc.reason, exc.message)
    if isinstance(exc, PolicyOwnershipConflict):
        return json_error(403, "forbidden", exc.reason, exc.message)
    if isinstance(exc, ForeignObjectPath):
        return json_error(403, "forbidden", exc.reason, exc.message)
    if isinstance(exc, StorageUnavailable):
        return json_error(503, "service_unavailable", exc.reason, exc.message)
    raise exc


async def run_bounded(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking call in a worker thread under the backing-store deadline."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs), timeout=get_object_store_timeout_seconds()
        )
    except asyncio.TimeoutError as exc:
        _log.warning("blocking call timed out: %s", getattr(func, "__name__", "call"))
        raise StorageUnavailable("storage_timeout", "Storage did not respond in time") from exc


async def read_json_object(request: Request) -> Optional[dict]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


__all__ = [
    "current_caller",
    "json_error",
    "unauthenticated",
    "csrf_violation",
    "not_found",
    "error_response",
    "run_bounded",
    "read_json_object",
]
