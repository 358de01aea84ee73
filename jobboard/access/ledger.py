"""
Access Control Ledger: one {owner, visibility} record per stored object.

Rules:
    - `set_policy` is compare-and-set on the owner: the first attachment fixes
      the owner; the same owner may re-attach (idempotent, may change
      visibility); a different owner raises PolicyOwnershipConflict and the
      stored record is left untouched.
    - No policy means nobody can read the object (fail closed).
    - There is no read cache, so there is nothing to invalidate on writes.

The in-memory ledger is for development and tests; production uses
`DBPolicyLedger` (jobboard.access.ledger_db).
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from jobboard.errors import PolicyOwnershipConflict
from jobboard.storage.keys import ObjectPath, is_valid_owner_id

_log = logging.getLogger("jobboard.access")

VISIBILITY_PRIVATE = "private"
VISIBILITY_PUBLIC = "public"
VISIBILITIES = frozenset({VISIBILITY_PRIVATE, VISIBILITY_PUBLIC})


@dataclass(frozen=True, slots=True)
class AccessPolicy:
    owner: str
    visibility: str = VISIBILITY_PRIVATE

    def __post_init__(self) -> None:
        if self.visibility not in VISIBILITIES:
            raise ValueError("invalid_visibility")
        if not is_valid_owner_id(self.owner):
            raise ValueError("invalid_owner")

    @property
    def is_public(self) -> bool:
        return self.visibility == VISIBILITY_PUBLIC


class PolicyLedgerProtocol(Protocol):
    """Persistence for AccessPolicy records keyed by canonical object path."""

    def set_policy(self, path: ObjectPath, policy: AccessPolicy) -> AccessPolicy: ...

    def get_policy(self, path: ObjectPath) -> Optional[AccessPolicy]: ...


def log_conflict(path: ObjectPath, existing_owner: str, attempted_owner: str) -> None:
    _log.error(
        "policy ownership conflict: path=%s owner=%s attempted_by=%s",
        path,
        existing_owner,
        attempted_owner,
    )


class InMemoryPolicyLedger:
    """Dict-backed ledger; writes are compare-and-set under a lock."""

    def __init__(self) -> None:
        self._data: Dict[str, AccessPolicy] = {}
        self._lock = threading.Lock()

    def set_policy(self, path: ObjectPath, policy: AccessPolicy) -> AccessPolicy:
        key = str(path)
        with self._lock:
            current = self._data.get(key)
            if current is not None and current.owner != policy.owner:
                log_conflict(path, current.owner, policy.owner)
                raise PolicyOwnershipConflict("owner_conflict", "Object is already owned by another user")
            self._data[key] = policy
        _log.info("policy attached: path=%s owner=%s visibility=%s", key, policy.owner, policy.visibility)
        return policy

    def get_policy(self, path: ObjectPath) -> Optional[AccessPolicy]:
        with self._lock:
            return self._data.get(str(path))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


__all__ = [
    "VISIBILITY_PRIVATE",
    "VISIBILITY_PUBLIC",
    "VISIBILITIES",
    "AccessPolicy",
    "PolicyLedgerProtocol",
    "InMemoryPolicyLedger",
]
