"""
Backing object store port.

Keep this small and framework-agnostic so tests can supply simple fakes.
Components above the store (grants, gateway, verification) depend only on
`ObjectStoreProtocol`; swapping providers must not change them.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from jobboard.errors import StorageUnavailable


class ObjectStream:
    """Open read stream for one stored object.

    Intent:
        Hand bytes to the HTTP layer chunk by chunk; the whole object is
        never held in memory.

    Behavior:
        - Iterating yields `bytes` chunks from the backing store.
        - `close()` releases the underlying resource and is safe to call more
          than once (the web layer closes in a background task and on error).
    """

    def __init__(
        self,
        chunks: Iterator[bytes],
        *,
        content_type: str | None = None,
        content_length: int | None = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._chunks = chunks
        self.content_type = content_type or "application/octet-stream"
        self.content_length = content_length
        self._on_close = on_close
        self._closed = False
        self._lock = threading.Lock()

    def __iter__(self) -> Iterator[bytes]:
        return self._chunks

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._on_close is not None:
            self._on_close()


class ObjectStoreProtocol(Protocol):
    """Protocol describing the blob store behind every upload and download."""

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]: ...

    def head_object(self, *, bucket: str, key: str) -> Optional[Dict[str, Any]]: ...

    def exists(self, *, bucket: str, key: str) -> bool: ...

    def open_stream(self, *, bucket: str, key: str, chunk_size: int) -> ObjectStream: ...


class NullObjectStore:
    """Fallback store that signals the backing store is not configured."""

    def presign_upload(self, *, bucket: str, key: str, expires_in: int, headers: Dict[str, str]) -> Dict[str, Any]:  # noqa: D401
        raise StorageUnavailable("object_store_not_configured", "Storage is not configured")

    def head_object(self, *, bucket: str, key: str) -> Optional[Dict[str, Any]]:  # noqa: D401
        raise StorageUnavailable("object_store_not_configured", "Storage is not configured")

    def exists(self, *, bucket: str, key: str) -> bool:  # noqa: D401
        raise StorageUnavailable("object_store_not_configured", "Storage is not configured")

    def open_stream(self, *, bucket: str, key: str, chunk_size: int) -> ObjectStream:  # noqa: D401
        raise StorageUnavailable("object_store_not_configured", "Storage is not configured")


__all__ = ["ObjectStream", "ObjectStoreProtocol", "NullObjectStore"]
