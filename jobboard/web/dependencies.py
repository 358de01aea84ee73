"""
Process-wide collaborators used by the routers.

Startup wiring (jobboard.web.wiring) or tests inject concrete backends through
the setters; routers read them on every request via the builder helpers so a
lazy rewire takes effect immediately.
"""
from __future__ import annotations

from typing import List, Optional

from jobboard.access.attachments import ObjectAttachmentService
from jobboard.access.decisions import AccessDecisionEngine
from jobboard.access.ledger import InMemoryPolicyLedger, PolicyLedgerProtocol
from jobboard.access.relationships import (
    InMemoryRecruitmentDirectory,
    RecruitmentDirectoryProtocol,
    RelationshipPredicate,
    default_relationship_predicates,
)
from jobboard.storage.config import upload_verification_required
from jobboard.storage.gateway import RetrievalGateway
from jobboard.storage.grants import UploadGrantIssuer
from jobboard.storage.ports import NullObjectStore, ObjectStoreProtocol
from jobboard.web.sessions import SessionStore

OBJECT_STORE: ObjectStoreProtocol = NullObjectStore()
POLICY_LEDGER: PolicyLedgerProtocol = InMemoryPolicyLedger()
RECRUITMENT_DIRECTORY: RecruitmentDirectoryProtocol = InMemoryRecruitmentDirectory()
SESSION_STORE = SessionStore()
_PREDICATES: Optional[List[RelationshipPredicate]] = None


def set_object_store(store: ObjectStoreProtocol) -> None:
    """Allow tests or startup code to provide a concrete object store."""
    global OBJECT_STORE
    OBJECT_STORE = store


def set_policy_ledger(ledger: PolicyLedgerProtocol) -> None:
    global POLICY_LEDGER
    POLICY_LEDGER = ledger


def set_recruitment_directory(directory: RecruitmentDirectoryProtocol) -> None:
    global RECRUITMENT_DIRECTORY
    RECRUITMENT_DIRECTORY = directory


def set_session_store(store: SessionStore) -> None:
    global SESSION_STORE
    SESSION_STORE = store


def set_relationship_predicates(predicates: Optional[List[RelationshipPredicate]]) -> None:
    """Override the relationship predicate list; None restores the defaults."""
    global _PREDICATES
    _PREDICATES = list(predicates) if predicates is not None else None


def relationship_predicates() -> List[RelationshipPredicate]:
    if _PREDICATES is not None:
        return list(_PREDICATES)
    return default_relationship_predicates(RECRUITMENT_DIRECTORY)


def store_is_configured() -> bool:
    return not isinstance(OBJECT_STORE, NullObjectStore)


def build_decision_engine() -> AccessDecisionEngine:
    return AccessDecisionEngine(POLICY_LEDGER, relationship_predicates())


def build_grant_issuer() -> UploadGrantIssuer:
    return UploadGrantIssuer(OBJECT_STORE)


def build_gateway() -> RetrievalGateway:
    return RetrievalGateway(OBJECT_STORE, build_decision_engine())


def build_attachment_service() -> ObjectAttachmentService:
    return ObjectAttachmentService(POLICY_LEDGER, store=OBJECT_STORE, verify=upload_verification_required())


def reset_for_tests() -> None:
    """Restore in-memory defaults (used by the test suite between tests)."""
    set_object_store(NullObjectStore())
    set_policy_ledger(InMemoryPolicyLedger())
    set_recruitment_directory(InMemoryRecruitmentDirectory())
    set_session_store(SessionStore())
    set_relationship_predicates(None)


__all__ = [
    "set_object_store",
    "set_policy_ledger",
    "set_recruitment_directory",
    "set_session_store",
    "set_relationship_predicates",
    "relationship_predicates",
    "store_is_configured",
    "build_decision_engine",
    "build_grant_issuer",
    "build_gateway",
    "build_attachment_service",
    "reset_for_tests",
]
