"""
In-memory session store resolving the opaque session cookie to a caller.

Why: The access layer never authenticates; it needs `{sub, role}` from a
trusted provider. Login itself belongs to the excluded identity layer, which
creates sessions here. For production, replace with a shared store.

Security: Cookies carry only an opaque session id. Session data stays server-side.
"""
from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from jobboard.access.identity import ALLOWED_ROLES

SESSION_COOKIE_NAME = "jobboard_session"


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    role: str
    expires_at: Optional[int] = None


class SessionStore:
    def __init__(self) -> None:
        self._data: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def create(self, *, user_id: str, role: str, ttl_seconds: int = 3600) -> SessionRecord:
        if role not in ALLOWED_ROLES:
            raise ValueError("invalid_role")
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(session_id=sid, sub=user_id, role=role, expires_at=_now() + ttl_seconds)
        with self._lock:
            self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            rec = self._data.get(session_id)
            if not rec:
                return None
            if rec.expires_at and rec.expires_at < _now():
                self._data.pop(session_id, None)
                return None
            return rec

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._data.pop(session_id, None)


__all__ = ["SESSION_COOKIE_NAME", "SessionRecord", "SessionStore"]
