"""
Error taxonomy for the object storage access-control layer.

Why:
    Callers at the HTTP boundary must distinguish "your request was invalid"
    from "the system is broken" from "you may not see this". Each class
    subclasses the builtin that already carries that meaning so existing
    `except LookupError` / `except ValueError` handling keeps working.

Conventions:
    - `str(exc)` is a stable, machine-readable reason code (e.g.
      "content_type_not_allowed"); routes echo it as `detail`.
    - `exc.message` is a human-readable sentence safe to show to end users.
"""
from __future__ import annotations


class _ReasonError(Exception):
    """Mixin storing a reason code plus an optional human-readable message."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.message = message or reason.replace("_", " ")


class UploadRejected(_ReasonError, ValueError):
    """Declared upload metadata violates the purpose allow-list (400)."""


class InvalidObjectPath(_ReasonError, ValueError):
    """A supplied object path is malformed or contains traversal (400)."""


class StorageUnavailable(_ReasonError, RuntimeError):
    """Backing object store is unreachable, misconfigured or timed out (503)."""


class ObjectNotFound(_ReasonError, LookupError):
    """No backing object exists for the path (404)."""


class ObjectAccessDenied(ObjectNotFound):
    """Caller may not read the object.

    Subclasses ObjectNotFound on purpose: boundaries that only catch
    ObjectNotFound answer a denial exactly like a missing object.
    """


class PolicyOwnershipConflict(_ReasonError, PermissionError):
    """A second owner tried to claim an object that already has a policy (403)."""


class ForeignObjectPath(_ReasonError, PermissionError):
    """Caller tried to save a path whose owner segment is someone else (403)."""


__all__ = [
    "UploadRejected",
    "InvalidObjectPath",
    "StorageUnavailable",
    "ObjectNotFound",
    "ObjectAccessDenied",
    "PolicyOwnershipConflict",
    "ForeignObjectPath",
]
