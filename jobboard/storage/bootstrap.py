"""
Supabase Storage bootstrap helpers.

Intent:
    Ensure the private object bucket exists on startup (dev/stage friendly).

Security & Safety:
    - Controlled by `AUTO_CREATE_STORAGE_BUCKETS=true` env flag.
    - Requires server-side `SUPABASE_SERVICE_ROLE_KEY`.
    - Idempotent: lists buckets first, creates only missing ones, always private.

Usage:
    Call `ensure_buckets_from_env()` after wiring the object store.
"""
from __future__ import annotations

import logging
import os
from typing import Iterable

import requests

from jobboard.storage.config import _env_flag, get_object_bucket

_log = logging.getLogger("jobboard.storage")

_TIMEOUT = (3, 10)


def _headers(key: str) -> dict[str, str]:
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def _list_buckets(base_url: str, key: str) -> list[dict]:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    try:
        resp = requests.get(url, headers=_headers(key), timeout=_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("list buckets failed: error=%s", type(exc).__name__)
        return []
    _log.debug("GET /storage/v1/bucket status=%s", resp.status_code)
    try:
        data = resp.json()
    except ValueError:
        data = []
    return data if isinstance(data, list) else []


def _create_bucket(base_url: str, key: str, name: str) -> bool:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    headers = {**_headers(key), "Content-Type": "application/json"}
    # Objects are served only through the retrieval route; never a public bucket.
    payload = {"name": name, "public": False}
    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("create bucket '%s' failed: error=%s", name, type(exc).__name__)
        return False
    if resp.status_code >= 300:
        _log.warning("create bucket '%s' failed: status=%s body=%s", name, resp.status_code, resp.text)
        return False
    _log.debug("POST /storage/v1/bucket status=%s created='%s'", resp.status_code, name)
    return True


def ensure_buckets(base_url: str, key: str, buckets: Iterable[str]) -> bool:
    """Ensure each bucket in `buckets` exists; create if missing.

    Behavior:
        - Lists existing buckets, creates only missing ones (idempotent).
        - Logs non-2xx responses for visibility (e.g., 409/403/503).
        - Verifies via a follow-up list and warns if a bucket is still missing.

    Returns:
        True (work attempted). Warnings in logs indicate problems to investigate.
    """
    wanted = {name for name in buckets if name}
    names = {str(it.get("name") or it.get("id") or "") for it in _list_buckets(base_url, key)}
    missing = wanted - names
    if not missing:
        return True
    for name in sorted(missing):
        _create_bucket(base_url, key, name)
    final_names = {str(it.get("name") or it.get("id") or "") for it in _list_buckets(base_url, key)}
    for name in sorted(wanted - final_names):
        _log.warning("bucket '%s' still missing after create attempt", name)
    return True


def ensure_buckets_from_env() -> bool:
    """Read env and ensure the object bucket when AUTO_CREATE_STORAGE_BUCKETS=true.

    Env:
        - AUTO_CREATE_STORAGE_BUCKETS=true (opt-in safety)
        - SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY (server-side credentials)
        - OBJECT_STORAGE_BUCKET (default: objects)

    Returns False when disabled or when mandatory env is missing.
    """
    if not _env_flag("AUTO_CREATE_STORAGE_BUCKETS"):
        return False
    _log.warning(
        "AUTO_CREATE_STORAGE_BUCKETS=true detected (dev/test convenience only). Disable this flag in prod/stage environments."
    )
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        return False
    return ensure_buckets(base, key, [get_object_bucket()])


__all__ = ["ensure_buckets_from_env", "ensure_buckets"]
