"""Object upload grants, local upload target and the `/objects/...` read route."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from jobboard.access.identity import ROLE_EMPLOYER
from jobboard.errors import InvalidObjectPath, ObjectNotFound, StorageUnavailable, UploadRejected
from jobboard.storage.config import get_object_bucket
from jobboard.storage.gateway import stream_to_async
from jobboard.storage.keys import parse_object_path, parse_storage_key
from jobboard.storage.local_store import LocalObjectStore
from jobboard.storage.purposes import PURPOSE_PROFILE, PURPOSE_REQUIREMENT, PURPOSE_RESUME, rule_for
from jobboard.storage.upload_policy import mint_object_path, normalize_content_type
from jobboard.web import dependencies
from jobboard.web.routes.common import (
    csrf_violation,
    current_caller,
    error_response,
    json_error,
    not_found,
    read_json_object,
    unauthenticated,
)
from jobboard.web.security import cache_headers, require_strict_same_origin
from jobboard.web.wiring import ensure_object_store

objects_router = APIRouter(tags=["Objects"])

_log = logging.getLogger("jobboard.web")


async def _create_upload_grant(request: Request, purpose: str) -> JSONResponse:
    """Shared body of the three upload endpoints.

    Request JSON: {contentType, fileSize}. Response JSON: {uploadURL,
    objectPath, expectedContentType, expectedSize, expiresAt, headers}.
    """
    caller = current_caller(request)
    if caller is None:
        return unauthenticated()
    # Strict CSRF for browser-triggered writes: Origin/Referer must be present and match.
    if not require_strict_same_origin(request):
        return csrf_violation()
    payload = await read_json_object(request)
    if payload is None:
        return json_error(400, "bad_request", "invalid_input", "Request body must be a JSON object")

    try:
        path, intent = mint_object_path(caller.id, purpose, payload.get("contentType"), payload.get("fileSize"))
    except UploadRejected as exc:
        _log.info("upload rejected: caller=%s purpose=%s reason=%s", caller.id, purpose, exc.reason)
        return error_response(exc)

    # Lazy wiring: if no store is ready yet, try wiring once now.
    ensure_object_store()
    try:
        grant = await dependencies.build_grant_issuer().issue(path, content_type=intent.declared_content_type)
    except StorageUnavailable as exc:
        return error_response(exc)

    body = {
        "uploadURL": grant.write_url,
        "objectPath": str(path),
        "expectedContentType": intent.declared_content_type,
        "expectedSize": intent.declared_size,
        "expiresAt": grant.expires_at_iso(),
        "headers": grant.headers,
    }
    return JSONResponse(body, status_code=200, headers=cache_headers())


@objects_router.post("/api/objects/upload")
async def create_profile_image_upload(request: Request):
    """Upload grant for a profile image (JPEG/PNG/WebP, up to 5 MB)."""
    return await _create_upload_grant(request, PURPOSE_PROFILE)


@objects_router.post("/api/objects/upload-resume")
async def create_resume_upload(request: Request):
    """Upload grant for a resume (PDF/DOC/DOCX, up to 10 MB)."""
    return await _create_upload_grant(request, PURPOSE_RESUME)


@objects_router.post("/api/objects/upload-document")
async def create_requirement_document_upload(request: Request):
    """Upload grant for a job requirement document. Employers only."""
    caller = current_caller(request)
    if caller is None:
        return unauthenticated()
    if caller.role != ROLE_EMPLOYER:
        return json_error(403, "forbidden", "employer_only", "Only employers can upload job documents")
    return await _create_upload_grant(request, PURPOSE_REQUIREMENT)


@objects_router.put("/api/objects/local-upload/{key:path}")
async def local_upload(request: Request, key: str):
    """Write target for grants issued by the filesystem store (dev only).

    Security:
        - Requires an authenticated caller whose id is the key's owner segment.
        - Strict same-origin.
        - Content-Type must be allowed for the key's purpose; body is streamed
          with the purpose size limit; an existing object is never replaced.
    """
    ensure_object_store()
    store = dependencies.OBJECT_STORE
    if not isinstance(store, LocalObjectStore):
        return not_found()
    caller = current_caller(request)
    if caller is None:
        return unauthenticated()
    if not require_strict_same_origin(request):
        return csrf_violation()
    try:
        path = parse_storage_key(key)
    except InvalidObjectPath as exc:
        return error_response(exc)
    if path.owner_id != caller.id:
        return json_error(403, "forbidden", "foreign_path", "Invalid file path")
    rule = rule_for(path.purpose)
    content_type = normalize_content_type(request.headers.get("content-type"))
    if rule is None or content_type not in rule.allowed_content_types:
        return json_error(400, "bad_request", "content_type_not_allowed", rule.type_message if rule else None)
    try:
        size = await store.write_stream(
            bucket=get_object_bucket(),
            key=path.storage_key,
            chunks=request.stream(),
            limit=rule.max_size_bytes,
        )
    except (UploadRejected, InvalidObjectPath) as exc:
        return error_response(exc)
    return JSONResponse({"objectPath": str(path), "size": size}, status_code=200, headers=cache_headers())


@objects_router.get("/objects/{object_path:path}")
async def read_object(request: Request, object_path: str):
    """Stream a stored object to an authorized caller.

    Missing objects and denied reads produce the same 404 body. Malformed
    paths are rejected with 400 before any lookup.
    """
    caller = current_caller(request)
    if caller is None:
        return unauthenticated()
    try:
        # The route already consumed "/objects"; a second prefix is not canonical.
        path = parse_object_path("/" + object_path, allow_url_prefix=False)
    except InvalidObjectPath as exc:
        _log.info("object read rejected: caller=%s reason=%s", caller.id, exc.reason)
        return error_response(exc)

    ensure_object_store()
    try:
        stream = await dependencies.build_gateway().fetch(caller, path)
    except (ObjectNotFound, StorageUnavailable) as exc:
        return error_response(exc)

    headers = {
        "Cache-Control": "private, no-store",
        "X-Content-Type-Options": "nosniff",
        "Content-Disposition": f'inline; filename="{path.filename}"',
    }
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return StreamingResponse(
        stream_to_async(stream, key=path.storage_key),
        media_type=stream.content_type,
        headers=headers,
        # The iterator also closes on exit; ObjectStream.close is idempotent.
        background=BackgroundTask(stream.close),
    )


__all__ = ["objects_router"]
