"""
Runtime wiring for the object store, policy ledger and recruitment directory.

Why:
    App startup may occur before Supabase is reachable locally, leaving the
    object store unset and breaking uploads. `wire_object_store_if_configured`
    is idempotent and used both at startup and lazily from routes that need
    storage (`ensure_object_store`).

Selection order for the object store:
    1. Supabase (official client; storage3 client for local hosts when the
       official client rejects a non-JWT dev key).
    2. LocalObjectStore when LOCAL_OBJECT_STORE_ROOT is set.
    3. NullObjectStore (every call answers 503).

Security:
    Requires SUPABASE_SERVICE_ROLE_KEY and SUPABASE_URL for the real store.
    Only server-side clients are created; no secrets reach clients.
"""
from __future__ import annotations

import logging
import os
from urllib.parse import urlparse

from jobboard.storage.config import get_local_store_root, get_policy_ledger_backend
from jobboard.storage.local_store import LocalObjectStore
from jobboard.storage.supabase_store import SupabaseObjectStore
from jobboard.web import dependencies

_log = logging.getLogger("jobboard.web")

_STARTUP_ATTEMPTED = False


def _is_local_host(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host in {"127.0.0.1", "localhost", "host.docker.internal"}


def _supabase_store(url: str, key: str) -> SupabaseObjectStore | None:
    global _STARTUP_ATTEMPTED
    try:
        from supabase import create_client

        return SupabaseObjectStore(create_client(url, key))
    except Exception as exc:
        # Startup attempt: stay Null and let the first request retry.
        if not _STARTUP_ATTEMPTED and not _is_local_host(url):
            _log.warning("Supabase client unavailable at startup: %s: %s", exc.__class__.__name__, str(exc))
            return None
        _log.warning("Supabase client unavailable: %s: %s; trying storage3", exc.__class__.__name__, str(exc))

    force = (os.getenv("SUPABASE_FALLBACK_STORAGE3", "false").lower() == "true")
    if not force and not _is_local_host(url):
        return None
    try:
        from storage3._sync.client import SyncStorageClient
    except ImportError as exc:
        _log.warning("storage3 client import failed: %s: %s", exc.__class__.__name__, str(exc))
        return None
    headers = {"Authorization": f"Bearer {key}", "apikey": key}
    return SupabaseObjectStore(SyncStorageClient(f"{url.rstrip('/')}/storage/v1", headers))


def wire_object_store_if_configured() -> bool:
    """Attempt to wire a concrete object store.

    Returns True when a non-null store is active after the call. Safe and
    idempotent to call multiple times.
    """
    global _STARTUP_ATTEMPTED
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    try:
        if url and key:
            store = _supabase_store(url, key)
            if store is not None:
                dependencies.set_object_store(store)
                _log.info("Object store wired: Supabase")
                from jobboard.storage.bootstrap import ensure_buckets_from_env

                ensure_buckets_from_env()
                return True
        root = get_local_store_root()
        if root:
            dependencies.set_object_store(LocalObjectStore(root))
            _log.info("Object store wired: local filesystem")
            return True
        return False
    finally:
        _STARTUP_ATTEMPTED = True


def ensure_object_store() -> bool:
    """Lazy rewire used by routes: no-op when a store is already wired."""
    if dependencies.store_is_configured():
        return True
    return wire_object_store_if_configured()


def wire_access_backends() -> str:
    """Select ledger and directory backends from POLICY_LEDGER_BACKEND.

    Returns the backend name actually wired ("db" or "memory").
    """
    if get_policy_ledger_backend() != "db":
        return "memory"
    from jobboard.access.ledger_db import DBPolicyLedger
    from jobboard.access.relationships import DBRecruitmentDirectory

    dependencies.set_policy_ledger(DBPolicyLedger())
    dependencies.set_recruitment_directory(DBRecruitmentDirectory())
    _log.info("Policy ledger wired: Postgres")
    return "db"


__all__ = ["wire_object_store_if_configured", "ensure_object_store", "wire_access_backends"]
