"""
Access Decision Engine: may this caller read this stored object?

Algorithm (first match wins):
    1. no policy                -> deny ("no_policy")
    2. visibility == public     -> allow ("public")
    3. caller is the owner      -> allow ("owner")
    4. caller is admin          -> allow ("admin")
    5. relationship predicates  -> allow ("relationship:<name>") on first True
    6. otherwise                -> deny ("no_grant")

Steps 2-4 are pure comparisons on the loaded policy; only step 5 may call
into the relationship oracle. The engine never writes to the ledger. A
predicate that raises is logged and counted as "no grant", except for
StorageUnavailable, which propagates so an oracle outage is reported as one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from jobboard.access.identity import CallerIdentity
from jobboard.access.ledger import PolicyLedgerProtocol
from jobboard.access.relationships import RelationshipPredicate
from jobboard.errors import InvalidObjectPath, StorageUnavailable
from jobboard.storage.keys import ObjectPath, parse_object_path

_log = logging.getLogger("jobboard.access")


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


class AccessDecisionEngine:
    def __init__(self, ledger: PolicyLedgerProtocol, predicates: Iterable[RelationshipPredicate] = ()) -> None:
        self._ledger = ledger
        self._predicates: List[RelationshipPredicate] = list(predicates)

    @property
    def predicates(self) -> tuple:
        return tuple(self._predicates)

    def decide(self, caller: CallerIdentity, path: ObjectPath | str) -> AccessDecision:
        """Evaluate read access and return the decision with its reason."""
        if isinstance(path, str):
            try:
                path = parse_object_path(path)
            except InvalidObjectPath:
                return AccessDecision(False, "invalid_path")

        policy = self._ledger.get_policy(path)
        if policy is None:
            return AccessDecision(False, "no_policy")
        if policy.is_public:
            return AccessDecision(True, "public")
        if caller.id == policy.owner:
            return AccessDecision(True, "owner")
        if caller.is_admin:
            return AccessDecision(True, "admin")

        for predicate in self._predicates:
            name = getattr(predicate, "name", type(predicate).__name__)
            try:
                granted = predicate(caller, path, policy)
            except StorageUnavailable:
                # Outage of the relationship oracle is a 503, not a denial.
                _log.warning("relationship oracle unavailable: predicate=%s caller=%s path=%s", name, caller.id, path)
                raise
            except Exception as exc:
                _log.warning(
                    "relationship predicate failed: predicate=%s caller=%s path=%s error=%s",
                    name,
                    caller.id,
                    path,
                    type(exc).__name__,
                )
                continue
            if granted:
                return AccessDecision(True, f"relationship:{name}")
        return AccessDecision(False, "no_grant")

    def can_read(self, caller_id: str, caller_role: str, path: ObjectPath | str) -> bool:
        return self.decide(CallerIdentity(id=caller_id, role=caller_role), path).allowed


__all__ = ["AccessDecision", "AccessDecisionEngine"]
