"""
Supabase-backed object store.

This store implements ObjectStoreProtocol using a provided Supabase client.
It is duck-typed to avoid a hard dependency during testing. The client is
expected to expose `.storage.from_(bucket)` (or `.from_(bucket)` for a bare
storage3 client) which returns an object offering:

- create_signed_upload_url(path) -> { signed_url | signedURL | url }
- create_signed_url(path, expires_in) -> { signed_url | signedURL | url }

Metadata is read with `requests.head` against a short-lived signed URL;
downloads stream through `httpx` without following redirects.

Security:
- The caller must ensure the client is initialized with the Service Role key.
- The bucket must be private; signed URLs are never logged or returned to
  readers (reads are proxied by the retrieval route).
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse as _urlparse, urlunparse as _urlunparse

import httpx
import requests

from jobboard.errors import ObjectNotFound, StorageUnavailable
from jobboard.storage.config import get_object_store_timeout_seconds
from jobboard.storage.ports import ObjectStream

_log = logging.getLogger("jobboard.storage")

_URL_KEYS = ("url", "signed_url", "signedURL", "signedUrl")
_HEAD_URL_TTL_SECONDS = 60


class SupabaseObjectStore:
    """Object store using a supabase (or storage3) client for Storage operations."""

    def __init__(self, client: Any, *, timeout: float | None = None):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client
        self._timeout = timeout

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)
        raise StorageUnavailable("invalid_supabase_client", "Storage is not configured")

    def _timeout_seconds(self) -> float:
        return float(self._timeout) if self._timeout else get_object_store_timeout_seconds()

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    @staticmethod
    def _norm_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself; keys must be bucket-relative.
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    def _extract_url(self, res: Any) -> Optional[str]:
        """Normalize signed URL field names across client versions."""
        url = None
        if isinstance(res, dict):
            url = self._first_key(res, *_URL_KEYS)
            data = res.get("data")
            if url is None and isinstance(data, dict):
                url = self._first_key(data, *_URL_KEYS)
        elif isinstance(res, (list, tuple)) and res and isinstance(res[0], dict):
            # Some clients return a (data, error) tuple.
            url = self._first_key(res[0], *_URL_KEYS)
        return str(url) if url else None

    def _signed_download_url(self, bucket: str, key: str, expires_in: int) -> str:
        b = self._bucket(bucket)
        try:
            res = b.create_signed_url(self._norm_key(bucket, key), expires_in)
        except Exception as exc:
            # storage3 raises StorageException with a 404-ish payload for missing keys.
            if _looks_not_found(exc):
                raise ObjectNotFound("object_not_found", "Object not found") from exc
            _log.warning("signed download url failed: key=%s error=%s", key, type(exc).__name__)
            raise StorageUnavailable("storage_error", "Storage request failed") from exc
        url = self._extract_url(res)
        if not url:
            raise StorageUnavailable("presign_download_failed", "Storage request failed")
        return self._normalize_signed_url_host(url)

    # --- Protocol methods --------------------------------------------------------

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]:
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        # Supabase signed upload URLs do not take expires_in on this call;
        # the TTL is encoded in the token server-side.
        try:
            res = b.create_signed_upload_url(norm_key)
        except Exception as exc:
            _log.warning("presign upload failed: key=%s error=%s", norm_key, type(exc).__name__)
            raise StorageUnavailable("presign_failed", "Storage request failed") from exc
        url = self._extract_url(res)
        if not url:
            raise StorageUnavailable("presign_failed", "Storage request failed")
        url = self._normalize_signed_url_host(url)
        p = _urlparse(url)
        path = p.path or "/"
        if path.startswith("/object/"):
            path = "/storage/v1" + path
        # Force the upload/sign endpoint shape for PUT.
        path = path.replace("/storage/v1/object/sign/", "/storage/v1/object/upload/sign/")
        url = _urlunparse((p.scheme, p.netloc, path, p.params, p.query, p.fragment))
        hdrs = {str(k).lower(): v for k, v in dict(headers or {}).items()}
        return {"url": url, "headers": hdrs}

    def head_object(self, *, bucket: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            url = self._signed_download_url(bucket, key, _HEAD_URL_TTL_SECONDS)
        except ObjectNotFound:
            return None
        try:
            head = requests.head(url, timeout=self._timeout_seconds(), allow_redirects=False)
        except requests.RequestException as exc:
            _log.warning("head object failed: key=%s error=%s", key, type(exc).__name__)
            raise StorageUnavailable("storage_unreachable", "Storage request failed") from exc
        status = int(getattr(head, "status_code", 500))
        if status in (400, 404):
            # Supabase answers 400 "Object not found" on some versions.
            return None
        if status >= 300:
            _log.warning("head object failed: key=%s status=%s", key, status)
            raise StorageUnavailable("storage_error", "Storage request failed")
        ctype = head.headers.get("content-type") or head.headers.get("Content-Type")
        clen = head.headers.get("content-length") or head.headers.get("Content-Length")
        try:
            size = int(clen) if clen is not None else None
        except ValueError:
            size = None
        return {"content_length": size, "content_type": ctype}

    def exists(self, *, bucket: str, key: str) -> bool:
        return self.head_object(bucket=bucket, key=key) is not None

    def open_stream(self, *, bucket: str, key: str, chunk_size: int) -> ObjectStream:
        url = self._signed_download_url(bucket, key, _HEAD_URL_TTL_SECONDS)
        # Do not follow redirects; an unexpected redirect could leave the storage host.
        client = httpx.Client(timeout=self._timeout_seconds(), follow_redirects=False)
        try:
            resp = client.send(client.build_request("GET", url), stream=True)
        except httpx.HTTPError as exc:
            client.close()
            _log.warning("open stream failed: key=%s error=%s", key, type(exc).__name__)
            raise StorageUnavailable("storage_unreachable", "Storage request failed") from exc
        status = int(resp.status_code)
        if status >= 300:
            resp.close()
            client.close()
            if status in (400, 404):
                raise ObjectNotFound("object_not_found", "Object not found")
            _log.warning("open stream failed: key=%s status=%s", key, status)
            raise StorageUnavailable("storage_error", "Storage request failed")

        def _chunks() -> Iterator[bytes]:
            for chunk in resp.iter_bytes(chunk_size):
                if chunk:
                    yield chunk

        def _close() -> None:
            resp.close()
            client.close()

        clen = resp.headers.get("content-length")
        return ObjectStream(
            _chunks(),
            content_type=resp.headers.get("content-type"),
            content_length=int(clen) if clen and clen.isdigit() else None,
            on_close=_close,
        )

    # --- Local helpers ---------------------------------------------------------

    def _normalize_signed_url_host(self, url: str) -> str:
        """For local dev, rewrite signed URL host to SUPABASE_URL host.

        Why:
            Some local setups return signed URLs with container-internal hosts
            that are not resolvable from the app. Rewriting the host keeps the
            signature valid (the token is path-bound).

        Behavior:
            Only rewrites when SUPABASE_REWRITE_SIGNED_URL_HOST=true and
            SUPABASE_URL is set. Path, query and fragment are preserved.
        """
        base = (os.getenv("SUPABASE_URL") or "").strip()
        force = (os.getenv("SUPABASE_REWRITE_SIGNED_URL_HOST", "false").lower() == "true")
        if not base or not force:
            return url
        src = _urlparse(url)
        dst = _urlparse(base)
        if not src.scheme or not src.netloc or not dst.netloc:
            return url
        path = src.path or "/"
        if path.startswith("/object/") or path.startswith("/sign/"):
            path = "/storage/v1" + path
        while "//" in path:
            path = path.replace("//", "/")
        return _urlunparse((dst.scheme or src.scheme, dst.netloc, path, src.params, src.query, src.fragment))


def _looks_not_found(exc: Exception) -> bool:
    text = str(exc).lower()
    return "not found" in text or "404" in text or "not_found" in text


__all__ = ["SupabaseObjectStore"]
