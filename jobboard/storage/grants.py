"""
Upload Grant Issuer: obtain a single-object, time-limited write credential.

The grant is bound to exactly one storage key (no prefix or wildcard grants).
Bytes written with it are not inspected here; opt-in verification happens at
save time (`jobboard.storage.verification`).

Failures of the backing store surface as `StorageUnavailable` (503 at the
boundary), never as the 400-class `UploadRejected` of the path policy.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict

from jobboard.errors import StorageUnavailable
from jobboard.storage.config import (
    get_object_bucket,
    get_object_store_timeout_seconds,
    get_upload_grant_ttl_seconds,
)
from jobboard.storage.keys import ObjectPath
from jobboard.storage.ports import ObjectStoreProtocol

_log = logging.getLogger("jobboard.storage")


@dataclass(frozen=True, slots=True)
class UploadGrant:
    object_path: ObjectPath
    write_url: str
    expires_at: datetime
    headers: Dict[str, str] = field(default_factory=dict)

    def expires_at_iso(self) -> str:
        return self.expires_at.isoformat(timespec="seconds")


class UploadGrantIssuer:
    """Issue presigned write targets through an ObjectStoreProtocol."""

    def __init__(
        self,
        store: ObjectStoreProtocol,
        *,
        bucket: str | None = None,
        ttl_seconds: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._ttl = ttl_seconds
        self._timeout = timeout_seconds

    async def issue(self, path: ObjectPath, *, content_type: str) -> UploadGrant:
        """Request a write URL for `path`.

        The backing-store call runs in a worker thread under a deadline so a
        hung store cannot hold the request task; cancelling the awaiting task
        abandons the call.

        Raises:
            StorageUnavailable: store not configured, unreachable, timed out
                or returned no URL.
        """
        bucket = self._bucket or get_object_bucket()
        ttl = self._ttl or get_upload_grant_ttl_seconds()
        timeout = self._timeout or get_object_store_timeout_seconds()
        if not bucket:
            raise StorageUnavailable("bucket_not_configured", "Storage is not configured")
        upload_headers = {"Content-Type": content_type}
        try:
            presigned = await asyncio.wait_for(
                asyncio.to_thread(
                    self._store.presign_upload,
                    bucket=bucket,
                    key=path.storage_key,
                    expires_in=ttl,
                    headers=upload_headers,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            _log.warning("upload grant timed out: owner=%s purpose=%s", path.owner_id, path.purpose)
            raise StorageUnavailable("storage_timeout", "Storage did not respond in time") from exc
        except StorageUnavailable as exc:
            _log.warning("upload grant failed: owner=%s reason=%s", path.owner_id, exc.reason)
            raise

        url = (presigned or {}).get("url")
        if not url:
            raise StorageUnavailable("presign_failed", "Storage request failed")
        try:
            headers_src = dict(presigned.get("headers") or upload_headers)
        except (TypeError, ValueError):
            headers_src = dict(upload_headers)
        headers_out = {str(k).lower(): str(v) for k, v in headers_src.items()}
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        _log.info("upload grant issued: owner=%s purpose=%s ttl=%s", path.owner_id, path.purpose, ttl)
        return UploadGrant(object_path=path, write_url=str(url), expires_at=expires_at, headers=headers_out)


__all__ = ["UploadGrant", "UploadGrantIssuer"]
