"""
Configuration and startup security checks for the job board object service.

Why: Uploaded resumes and profile photos are personal data. This module
provides a single guard that refuses obviously insecure production
deployments without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

from jobboard.storage.config import _env_flag, get_local_store_root, get_policy_ledger_backend

_PLACEHOLDER_KEYS = {"", "DUMMY_DO_NOT_USE", "CHANGE_ME", "CHANGEME"}


def current_environment() -> str:
    return (os.getenv("JOBBOARD_ENV", "dev") or "dev").strip().lower()


def is_prod_like(env: str | None = None) -> bool:
    env_l = (env if env is not None else current_environment()).lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - A real object store must be configured (SUPABASE_URL + service role key,
      the key not being a placeholder).
    - The filesystem store must be off.
    - The policy ledger must be the Postgres one, with a DSN.
    - DATABASE_URL must not explicitly disable TLS.
    - Bucket auto-provisioning must be off.
    """
    if not is_prod_like():
        return  # dev/test remain permissive

    if not (os.getenv("SUPABASE_URL") or "").strip():
        raise SystemExit("Refusing to start: SUPABASE_URL is unset in production; no object store configured.")

    srole = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if srole.upper() in _PLACEHOLDER_KEYS or srole.upper().startswith("CHANGE_ME"):
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    if get_local_store_root():
        raise SystemExit("Refusing to start: LOCAL_OBJECT_STORE_ROOT must be unset in production/staging.")

    if get_policy_ledger_backend() != "db":
        raise SystemExit("Refusing to start: POLICY_LEDGER_BACKEND=db is mandatory in production/staging.")

    dsn = os.getenv("DATABASE_URL", "")
    if not dsn:
        raise SystemExit("Refusing to start: DATABASE_URL is required for the policy ledger in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    if _env_flag("AUTO_CREATE_STORAGE_BUCKETS"):
        raise SystemExit("Refusing to start: AUTO_CREATE_STORAGE_BUCKETS must be false in production/staging.")


__all__ = ["current_environment", "is_prod_like", "ensure_secure_config_on_startup"]
