"""
Database-backed policy ledger for production use (Postgres/Supabase).

Why: The in-memory ledger is not durable and does not hold across instances.
This ledger persists policies in Postgres and enforces "owner fixed at first
attachment" inside a single statement, so concurrent duplicate saves (client
retries) and cross-owner claims cannot race.

Security:
- Intended to be used with a service role connection string; end-user clients
  must not access the `object_access_policies` table directly.
- The table name is validated before it is interpolated into SQL.

Note: This module uses psycopg3. It is imported only when enabled via
`POLICY_LEDGER_BACKEND=db`. Tests use a fake psycopg module.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Optional

from jobboard.access.ledger import AccessPolicy, log_conflict
from jobboard.errors import PolicyOwnershipConflict, StorageUnavailable
from jobboard.storage.keys import ObjectPath

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

_log = logging.getLogger("jobboard.access")

TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def resolve_dsn(dsn: str | None = None) -> str:
    return dsn or os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL", "")


class DBPolicyLedger:
    """Postgres-backed policy ledger.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Use a service role in Supabase.
    table:
        Fully qualified table name. Defaults to `public.object_access_policies`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.object_access_policies") -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBPolicyLedger")
        self._dsn = resolve_dsn(dsn)
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBPolicyLedger")
        if not TABLE_NAME_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table

    def set_policy(self, path: ObjectPath, policy: AccessPolicy) -> AccessPolicy:
        """Attach `policy` to `path` with compare-and-set on the owner.

        The upsert only updates rows whose stored owner equals the new owner;
        no returned row therefore means another owner holds the path.
        """
        try:
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"insert into {self._table} (object_path, owner_id, visibility) "
                        f"values (%s, %s, %s) "
                        f"on conflict (object_path) do update set visibility = excluded.visibility, updated_at = now() "
                        f"where {self._table}.owner_id = excluded.owner_id "
                        f"returning owner_id, visibility",
                        (str(path), policy.owner, policy.visibility),
                    )
                    row = cur.fetchone()
                    if row is None:
                        cur.execute(
                            f"select owner_id, visibility from {self._table} where object_path = %s",
                            (str(path),),
                        )
                        existing = cur.fetchone()
        except psycopg.Error as exc:
            _log.warning("policy write failed: path=%s error=%s", path, type(exc).__name__)
            raise StorageUnavailable("ledger_unavailable", "Policy store unavailable") from exc
        if row is None:
            log_conflict(path, str(existing[0]) if existing else "?", policy.owner)
            raise PolicyOwnershipConflict("owner_conflict", "Object is already owned by another user")
        _log.info("policy attached: path=%s owner=%s visibility=%s", path, row[0], row[1])
        return AccessPolicy(owner=str(row[0]), visibility=str(row[1]))

    def get_policy(self, path: ObjectPath) -> Optional[AccessPolicy]:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"select owner_id, visibility from {self._table} where object_path = %s",
                        (str(path),),
                    )
                    row = cur.fetchone()
        except psycopg.Error as exc:
            _log.warning("policy read failed: path=%s error=%s", path, type(exc).__name__)
            raise StorageUnavailable("ledger_unavailable", "Policy store unavailable") from exc
        if not row:
            return None
        return AccessPolicy(owner=str(row[0]), visibility=str(row[1]))


__all__ = ["DBPolicyLedger", "HAVE_PSYCOPG", "resolve_dsn"]
