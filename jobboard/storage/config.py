"""
Centralized storage configuration for the object bucket, limits and deadlines.

Intent:
    Provide a single source of truth for the bucket name, per-purpose upload
    ceilings, grant TTLs and backing-store deadlines. Every getter reads the
    environment at call time so tests and operators can change values without
    reloading modules.

Behavior:
    - Integer settings fall back to their default on missing, non-numeric or
      non-positive input and are clamped to the documented contract range.
    - Upload ceilings can only be lowered by configuration, never raised above
      the contract maximum for their purpose.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


OBJECT_BUCKET_DEFAULT = "objects"

PROFILE_IMAGE_MAX_BYTES = 5 * 1024 * 1024
RESUME_MAX_BYTES = 10 * 1024 * 1024
REQUIREMENT_MAX_BYTES = 10 * 1024 * 1024


def get_object_bucket() -> str:
    """Return the configured bucket name.

    Env:
        OBJECT_STORAGE_BUCKET – optional override; otherwise defaults to
        OBJECT_BUCKET_DEFAULT.
    """
    return (os.getenv("OBJECT_STORAGE_BUCKET") or OBJECT_BUCKET_DEFAULT).strip()


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def _parse_int_env(name: str, default: int, *, minimum: int = 1, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    value = max(value, minimum)
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def _parse_float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        value = float(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    return max(minimum, min(value, maximum))


# --- Size limits --------------------------------------------------------------

def get_profile_image_max_upload_bytes() -> int:
    """Maximum profile image size (default/clamped 5 MiB)."""
    return _parse_int_env(
        "PROFILE_IMAGE_MAX_UPLOAD_BYTES", PROFILE_IMAGE_MAX_BYTES, contract_max=PROFILE_IMAGE_MAX_BYTES
    )


def get_resume_max_upload_bytes() -> int:
    """Maximum resume size (default/clamped 10 MiB)."""
    return _parse_int_env("RESUME_MAX_UPLOAD_BYTES", RESUME_MAX_BYTES, contract_max=RESUME_MAX_BYTES)


def get_requirement_max_upload_bytes() -> int:
    """Maximum job-requirement document size (default/clamped 10 MiB)."""
    return _parse_int_env(
        "REQUIREMENT_MAX_UPLOAD_BYTES", REQUIREMENT_MAX_BYTES, contract_max=REQUIREMENT_MAX_BYTES
    )


# --- Grants, deadlines, streaming ---------------------------------------------

def get_upload_grant_ttl_seconds() -> int:
    """Lifetime of a presigned write credential (default 900s, clamped to [60, 3600])."""
    return _parse_int_env("UPLOAD_GRANT_TTL_SECONDS", 900, minimum=60, contract_max=3600)


def get_object_store_timeout_seconds() -> float:
    """Deadline applied to every backing-store call (default 10s, clamped to [1, 60])."""
    return _parse_float_env("OBJECT_STORE_TIMEOUT_SECONDS", 10.0, minimum=1.0, maximum=60.0)


def get_stream_chunk_bytes() -> int:
    """Chunk size used when streaming objects to clients (default 64 KiB)."""
    return _parse_int_env("OBJECT_STREAM_CHUNK_BYTES", 64 * 1024, minimum=4 * 1024, contract_max=1024 * 1024)


# --- Backends -----------------------------------------------------------------

def get_local_store_root() -> str | None:
    """Filesystem root for the development object store, if enabled."""
    return (os.getenv("LOCAL_OBJECT_STORE_ROOT") or "").strip() or None


def upload_verification_required() -> bool:
    """Whether saving an object must first verify the uploaded bytes' metadata."""
    return _env_flag("REQUIRE_UPLOAD_VERIFY")


def get_policy_ledger_backend() -> str:
    """Return "db" or "memory" (default) for the policy ledger and directory."""
    value = (os.getenv("POLICY_LEDGER_BACKEND") or "memory").strip().lower()
    return value if value in {"db", "memory"} else "memory"


__all__ = [
    "OBJECT_BUCKET_DEFAULT",
    "PROFILE_IMAGE_MAX_BYTES",
    "RESUME_MAX_BYTES",
    "REQUIREMENT_MAX_BYTES",
    "get_object_bucket",
    "get_profile_image_max_upload_bytes",
    "get_resume_max_upload_bytes",
    "get_requirement_max_upload_bytes",
    "get_upload_grant_ttl_seconds",
    "get_object_store_timeout_seconds",
    "get_stream_chunk_bytes",
    "get_local_store_root",
    "upload_verification_required",
    "get_policy_ledger_backend",
]
