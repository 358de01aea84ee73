"Job board object service"
from __future__ import annotations

import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jobboard.web import config as _cfg
from jobboard.web import dependencies
from jobboard.web.routes.attachments import attachments_router
from jobboard.web.routes.objects import objects_router
from jobboard.web.sessions import SESSION_COOKIE_NAME
from jobboard.web.wiring import wire_access_backends, wire_object_store_if_configured


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via JOBBOARD_ENABLE_DOTENV (default true outside pytest).
    """
    if _under_pytest():
        return False
    flag = (os.getenv("JOBBOARD_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("jobboard.web")

app = FastAPI(title="Job board objects", description="User-scoped object storage with read-time access control", version="0.1.0")

# Call wiring early so routes receive backends before the first request.
# If the store is not reachable yet, routes retry lazily (ensure_object_store).
wire_access_backends()
wire_object_store_if_configured()

# --- Auth & Security Middleware ------------------------------------------------


def _is_public_path(path: str) -> bool:
    return path in ("/health", "/favicon.ico")


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    path = request.url.path
    if _is_public_path(path):
        return await call_next(request)

    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = dependencies.SESSION_STORE.get(sid) if sid else None
    if not rec:
        headers = {"Cache-Control": "private, no-store", "Vary": "Origin"}
        return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)

    # Expose minimal, read-only user context for downstream handlers.
    request.state.user = {"sub": rec.sub, "role": rec.role}
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'; sandbox")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
    # HSTS: always on (dev = prod)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Routers -------------------------------------------------------------------

app.include_router(objects_router)
app.include_router(attachments_router)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse(
        {"status": "healthy", "object_store": "configured" if dependencies.store_is_configured() else "unconfigured"},
        headers={"Cache-Control": "private, no-store"},
    )


__all__ = ["app"]
