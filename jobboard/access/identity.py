"""
Caller identity as handed to the access layer.

Why:
- This layer never authenticates; it receives `{id, role}` from the session
  provider and only authorizes.
- Centralize allowed roles to avoid drift between the web layer and predicates.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

ROLE_JOB_SEEKER = "job_seeker"
ROLE_EMPLOYER = "employer"
ROLE_ADMIN = "admin"

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({ROLE_JOB_SEEKER, ROLE_EMPLOYER, ROLE_ADMIN})


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_employer(self) -> bool:
        return self.role == ROLE_EMPLOYER

    @classmethod
    def from_user(cls, user: Optional[Mapping[str, Any]]) -> Optional["CallerIdentity"]:
        """Build from the web layer's `request.state.user` dict.

        Returns None when the id is missing or the role is not recognised, so
        an unknown role can never satisfy a role check by accident.
        """
        if not user:
            return None
        sub = str(user.get("sub") or "").strip()
        role = str(user.get("role") or "").strip().lower()
        if not sub or role not in ALLOWED_ROLES:
            return None
        return cls(id=sub, role=role)


__all__ = ["ROLE_JOB_SEEKER", "ROLE_EMPLOYER", "ROLE_ADMIN", "ALLOWED_ROLES", "CallerIdentity"]
