"""
Shared web security helpers (CSRF same-origin checks, cache headers).

Keeping a single implementation for every router avoids security drift.
"""
from __future__ import annotations

import os
from urllib.parse import urlparse

from fastapi import Request


def cache_headers() -> dict[str, str]:
    # Responses may carry personal data: private and explicitly non-storable.
    return {"Cache-Control": "private, no-store", "Vary": "Origin"}


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    return scheme, p.hostname.lower(), int(p.port if p.port is not None else _default_port(scheme))


def _server_origin(request: Request) -> tuple[str, str, int]:
    """Origin the app is served under; X-Forwarded-* only when JOBBOARD_TRUST_PROXY=true."""
    trust_proxy = (os.getenv("JOBBOARD_TRUST_PROXY", "false") or "").lower() == "true"
    if trust_proxy:
        xf_proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
        scheme = (xf_proto or request.url.scheme or "http").lower()
        if ":" in xf_host:
            host_only, port_str = xf_host.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                port = _default_port(scheme)
            host = host_only.lower()
        else:
            host = (xf_host or (request.url.hostname or "")).lower()
            port = _default_port(scheme)
        xf_port = (request.headers.get("x-forwarded-port") or "").split(",")[0].strip()
        if xf_port:
            try:
                port = int(xf_port)
            except ValueError:
                port = _default_port(scheme)
        return scheme, host, port
    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else _default_port(scheme)
    return scheme, host, port


def is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin, else Referer. No header: allowed."""
    try:
        server = _server_origin(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False


def require_strict_same_origin(request: Request) -> bool:
    """Return True only when a same-origin indicator is present and matches.

    Browser-triggered writes (upload grants, saves) must carry Origin or
    Referer; requests without either are refused.
    """
    if not (request.headers.get("origin") or request.headers.get("referer")):
        return False
    return is_same_origin(request)


__all__ = ["cache_headers", "is_same_origin", "require_strict_same_origin"]
