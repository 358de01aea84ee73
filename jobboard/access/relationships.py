"""
Relationship oracle and relationship predicates.

The recruitment directory is owned by the CRUD layer (jobs, applications);
this module only asks it bounded yes/no questions. Predicates turn those
answers into read grants and are registered as an ordered list on the
decision engine, so a new relationship class is a new predicate, not a change
to the engine.

Predicate contract:
    `name` (str, used in audit logs) and `__call__(caller, path, policy) -> bool`.
    Predicates run only after the cheap owner/admin checks failed.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol, Set, Tuple

from jobboard.access.identity import CallerIdentity
from jobboard.access.ledger import AccessPolicy
from jobboard.access.ledger_db import TABLE_NAME_RE, resolve_dsn
from jobboard.errors import StorageUnavailable
from jobboard.storage.keys import ObjectPath
from jobboard.storage.purposes import PURPOSE_RESUME

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False

_log = logging.getLogger("jobboard.access")


class RecruitmentDirectoryProtocol(Protocol):
    """Read-only relationship facts supplied by the jobs/applications layer."""

    def employer_has_applicant(self, employer_id: str, seeker_id: str) -> bool: ...

    def job_owned_by(self, job_id: str, employer_id: str) -> bool: ...


class RelationshipPredicate(Protocol):
    name: str

    def __call__(self, caller: CallerIdentity, path: ObjectPath, policy: AccessPolicy) -> bool: ...


class InMemoryRecruitmentDirectory:
    """Directory for development and tests."""

    def __init__(self) -> None:
        self._job_owner: Dict[str, str] = {}
        self._applications: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    def add_job(self, job_id: str, employer_id: str) -> None:
        with self._lock:
            self._job_owner[job_id] = employer_id

    def add_application(self, job_id: str, seeker_id: str) -> None:
        with self._lock:
            if job_id not in self._job_owner:
                raise LookupError("job_not_found")
            self._applications.add((job_id, seeker_id))

    def employer_has_applicant(self, employer_id: str, seeker_id: str) -> bool:
        with self._lock:
            return any(
                self._job_owner.get(job_id) == employer_id
                for job_id, applicant in self._applications
                if applicant == seeker_id
            )

    def job_owned_by(self, job_id: str, employer_id: str) -> bool:
        with self._lock:
            return self._job_owner.get(job_id) == employer_id


class DBRecruitmentDirectory:
    """Postgres-backed directory over the CRUD layer's `jobs`/`applications` tables.

    Each question is a single `exists(...)` query so the cost of a relationship
    check is one round trip regardless of how many jobs an employer has.
    """

    def __init__(
        self,
        dsn: str | None = None,
        *,
        jobs_table: str = "public.jobs",
        applications_table: str = "public.applications",
    ) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBRecruitmentDirectory")
        self._dsn = resolve_dsn(dsn)
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBRecruitmentDirectory")
        for table in (jobs_table, applications_table):
            if not TABLE_NAME_RE.match(table or ""):
                raise ValueError("Invalid table name")
        self._jobs = jobs_table
        self._applications = applications_table

    def _exists(self, sql: str, params: tuple) -> bool:
        try:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    row = cur.fetchone()
        except psycopg.Error as exc:
            _log.warning("directory lookup failed: error=%s", type(exc).__name__)
            raise StorageUnavailable("directory_unavailable", "Directory unavailable") from exc
        return bool(row and row[0])

    def employer_has_applicant(self, employer_id: str, seeker_id: str) -> bool:
        return self._exists(
            f"select exists (select 1 from {self._applications} a "
            f"join {self._jobs} j on j.id = a.job_id "
            f"where j.employer_id = %s and a.seeker_id = %s)",
            (employer_id, seeker_id),
        )

    def job_owned_by(self, job_id: str, employer_id: str) -> bool:
        return self._exists(
            f"select exists (select 1 from {self._jobs} where id = %s and employer_id = %s)",
            (job_id, employer_id),
        )


class EmployerApplicantResume:
    """An employer may read the resume of anyone who applied to one of their jobs."""

    name = "employer_applicant_resume"

    def __init__(self, directory: RecruitmentDirectoryProtocol) -> None:
        self._directory = directory

    def __call__(self, caller: CallerIdentity, path: ObjectPath, policy: AccessPolicy) -> bool:
        if not caller.is_employer or path.purpose != PURPOSE_RESUME:
            return False
        return bool(self._directory.employer_has_applicant(caller.id, policy.owner))


def default_relationship_predicates(
    directory: Optional[RecruitmentDirectoryProtocol],
) -> List[RelationshipPredicate]:
    """Return the default ordered predicate list (empty without a directory)."""
    if directory is None:
        return []
    return [EmployerApplicantResume(directory)]


__all__ = [
    "RecruitmentDirectoryProtocol",
    "RelationshipPredicate",
    "InMemoryRecruitmentDirectory",
    "DBRecruitmentDirectory",
    "EmployerApplicantResume",
    "default_relationship_predicates",
]
