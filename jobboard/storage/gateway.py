"""
Retrieval Gateway: resolve a requested path, authorize, and open a stream.

Order of checks:
    1. Parse/normalize the requested path (traversal and shape) before any
       lookup. Failure -> InvalidObjectPath.
    2. The backing object must exist, regardless of policy state.
       Missing -> ObjectNotFound.
    3. Access Decision Engine. Deny -> ObjectAccessDenied, a subclass of
       ObjectNotFound, so the boundary answers both identically.
    4. Open a chunked stream; the caller must close it. A stream opened after
       the deadline is closed by the gateway.

Every blocking call (store, ledger, relationship oracle) runs in a worker
thread under the backing-store deadline, so cancellation of the request task
is not blocked by a hung call.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from jobboard.access.decisions import AccessDecisionEngine
from jobboard.access.identity import CallerIdentity
from jobboard.errors import ObjectAccessDenied, ObjectNotFound, StorageUnavailable
from jobboard.storage.config import get_object_bucket, get_object_store_timeout_seconds, get_stream_chunk_bytes
from jobboard.storage.keys import ObjectPath, parse_object_path
from jobboard.storage.ports import ObjectStoreProtocol, ObjectStream

_log = logging.getLogger("jobboard.access")


class RetrievalGateway:
    def __init__(
        self,
        store: ObjectStoreProtocol,
        engine: AccessDecisionEngine,
        *,
        bucket: str | None = None,
        timeout_seconds: float | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._bucket = bucket
        self._timeout = timeout_seconds
        self._chunk_size = chunk_size

    async def _bounded(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        timeout = self._timeout or get_object_store_timeout_seconds()
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args, **kwargs), timeout=timeout)
        except asyncio.TimeoutError as exc:
            _log.warning("retrieval timed out: step=%s", getattr(func, "__name__", "call"))
            raise StorageUnavailable("storage_timeout", "Storage did not respond in time") from exc

    async def fetch(self, caller: CallerIdentity, requested_path: str | ObjectPath) -> ObjectStream:
        """Return an open stream for `requested_path` if `caller` may read it.

        Raises:
            InvalidObjectPath: malformed path or traversal attempt.
            ObjectNotFound: no backing object (ObjectAccessDenied on deny).
            StorageUnavailable: store/ledger unreachable or timed out.
        """
        path = requested_path if isinstance(requested_path, ObjectPath) else parse_object_path(requested_path)
        bucket = self._bucket or get_object_bucket()
        key = path.storage_key

        present = await self._bounded(self._store.exists, bucket=bucket, key=key)
        if not present:
            raise ObjectNotFound("object_not_found", "Object not found")

        decision = await self._bounded(self._engine.decide, caller, path)
        if not decision.allowed:
            # Audit log only; the response must not reveal why.
            _log.info("object read denied: caller=%s role=%s path=%s reason=%s", caller.id, caller.role, path, decision.reason)
            raise ObjectAccessDenied(decision.reason, "Object not found")
        _log.debug("object read allowed: caller=%s path=%s reason=%s", caller.id, path, decision.reason)

        chunk_size = self._chunk_size or get_stream_chunk_bytes()
        return await self._open_stream(bucket=bucket, key=key, chunk_size=chunk_size)

    async def _open_stream(self, *, bucket: str, key: str, chunk_size: int) -> ObjectStream:
        """Open the stream under the deadline.

        A worker that finishes after the deadline (or after the request was
        cancelled) still hands back an open stream; it is closed as soon as it
        arrives.
        """
        timeout = self._timeout or get_object_store_timeout_seconds()
        task = asyncio.ensure_future(
            asyncio.to_thread(self._store.open_stream, bucket=bucket, key=key, chunk_size=chunk_size)
        )
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError as exc:
            task.add_done_callback(_close_abandoned_stream)
            _log.warning("retrieval timed out: step=open_stream key=%s", key)
            raise StorageUnavailable("storage_timeout", "Storage did not respond in time") from exc
        except asyncio.CancelledError:
            task.add_done_callback(_close_abandoned_stream)
            raise


def _close_abandoned_stream(task: "asyncio.Future[ObjectStream]") -> None:
    if task.cancelled() or task.exception() is not None:
        return
    task.result().close()


def stream_to_async(stream: ObjectStream, *, timeout_seconds: Optional[float] = None, key: str | None = None):
    """Adapt a blocking ObjectStream into an async iterator for the web layer.

    Each chunk is pulled in a worker thread under the store deadline. A stalled
    backend raises StorageUnavailable mid-body, so the server aborts the
    connection and the client never mistakes a truncated body for a complete one.
    """
    timeout = timeout_seconds or get_object_store_timeout_seconds()
    iterator = iter(stream)
    sentinel = object()

    async def _gen():
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        asyncio.to_thread(next, iterator, sentinel), timeout=timeout
                    )
                except asyncio.TimeoutError as exc:
                    _log.warning("object stream stalled; aborting response: key=%s", key)
                    raise StorageUnavailable("stream_stalled", "Storage stopped responding") from exc
                if chunk is sentinel:
                    return
                yield chunk
        finally:
            stream.close()

    return _gen()


__all__ = ["RetrievalGateway", "stream_to_async"]
