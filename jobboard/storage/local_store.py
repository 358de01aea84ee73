"""
Filesystem object store for development and offline setups.

Why:
    Without Supabase there is no presigned upload target. The "grant" this
    store issues points at the app's own `PUT /api/objects/local-upload/{key}`
    route, which writes the body beneath LOCAL_OBJECT_STORE_ROOT.

Security:
    - Every key is resolved beneath the root and rejected if it escapes it.
    - Writes use exclusive create: a key that already holds bytes is never
      overwritten (paths are single-use).
    - Not for production; the startup guard refuses it in prod/stage.
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, AsyncIterable, Dict, Iterator, Optional

from jobboard.errors import InvalidObjectPath, ObjectNotFound, UploadRejected
from jobboard.storage.ports import ObjectStream

_log = logging.getLogger("jobboard.storage")

LOCAL_UPLOAD_ROUTE = "/api/objects/local-upload"


class LocalObjectStore:
    """ObjectStoreProtocol implementation writing beneath a local directory."""

    def __init__(self, root: str | os.PathLike[str]):
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _target(self, bucket: str, key: str) -> Path:
        base = (self._root / bucket).resolve()
        target = (base / key.lstrip("/")).resolve()
        try:
            common = os.path.commonpath([str(base), str(target)])
        except ValueError as exc:
            raise InvalidObjectPath("path_error", "Invalid object path") from exc
        if common != str(base) or target == base:
            raise InvalidObjectPath("path_escape", "Invalid object path")
        return target

    # --- Protocol methods --------------------------------------------------------

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]:
        # Resolve once so an escaping key fails at grant time, not at PUT time.
        self._target(bucket, key)
        hdrs = {str(k).lower(): v for k, v in dict(headers or {}).items()}
        return {"url": f"{LOCAL_UPLOAD_ROUTE}/{key.lstrip('/')}", "headers": hdrs}

    def head_object(self, *, bucket: str, key: str) -> Optional[Dict[str, Any]]:
        target = self._target(bucket, key)
        if not target.is_file():
            return None
        ctype, _ = mimetypes.guess_type(target.name)
        return {"content_length": target.stat().st_size, "content_type": ctype}

    def exists(self, *, bucket: str, key: str) -> bool:
        return self._target(bucket, key).is_file()

    def open_stream(self, *, bucket: str, key: str, chunk_size: int) -> ObjectStream:
        target = self._target(bucket, key)
        try:
            fh = target.open("rb")
        except FileNotFoundError as exc:
            raise ObjectNotFound("object_not_found", "Object not found") from exc
        size = os.fstat(fh.fileno()).st_size
        ctype, _ = mimetypes.guess_type(target.name)

        def _chunks() -> Iterator[bytes]:
            for chunk in iter(lambda: fh.read(chunk_size), b""):
                yield chunk

        return ObjectStream(_chunks(), content_type=ctype, content_length=size, on_close=fh.close)

    # --- Local upload target -----------------------------------------------------

    async def write_stream(self, *, bucket: str, key: str, chunks: AsyncIterable[bytes], limit: int) -> int:
        """Persist an uploaded body, enforcing `limit` while streaming.

        Raises:
            UploadRejected: object_exists, size_exceeded or empty_body. A
                partially written file is removed before raising.
        """
        target = self._target(bucket, key)
        # Filesystem calls run in worker threads; the event loop only relays chunks.
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        total = 0
        try:
            fh = await asyncio.to_thread(target.open, "xb")
        except FileExistsError as exc:
            raise UploadRejected("object_exists", "Object already uploaded") from exc
        try:
            try:
                async for chunk in chunks:
                    if not chunk:
                        continue
                    total += len(chunk)
                    if limit > 0 and total > limit:
                        raise UploadRejected("size_exceeded", "File too large")
                    await asyncio.to_thread(fh.write, chunk)
            finally:
                await asyncio.to_thread(fh.close)
            if total == 0:
                raise UploadRejected("empty_body", "Empty upload")
        except BaseException:
            await asyncio.to_thread(target.unlink, missing_ok=True)
            raise
        _log.info("local object stored: key=%s size=%s", key, total)
        return total


__all__ = ["LOCAL_UPLOAD_ROUTE", "LocalObjectStore"]
