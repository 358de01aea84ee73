"""
Attach-on-save: turn an uploaded path into a readable object.

A policy is created only when the owning caller saves the path into one of
their records (profile image, resume, job requirement document). An upload
that is never saved keeps no policy and stays unreadable.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from jobboard.access.identity import CallerIdentity
from jobboard.access.ledger import (
    VISIBILITY_PRIVATE,
    VISIBILITY_PUBLIC,
    AccessPolicy,
    PolicyLedgerProtocol,
)
from jobboard.errors import ForeignObjectPath, InvalidObjectPath
from jobboard.storage.keys import ObjectPath, parse_object_path
from jobboard.storage.ports import ObjectStoreProtocol
from jobboard.storage.purposes import PURPOSE_PROFILE, PURPOSE_REQUIREMENT, PURPOSE_RESUME
from jobboard.storage.verification import verify_uploaded_object

_log = logging.getLogger("jobboard.access")

# Requirement documents hang off job postings, which every signed-in user may see.
DEFAULT_VISIBILITY: Mapping[str, str] = {
    PURPOSE_PROFILE: VISIBILITY_PRIVATE,
    PURPOSE_RESUME: VISIBILITY_PRIVATE,
    PURPOSE_REQUIREMENT: VISIBILITY_PUBLIC,
}


class ObjectAttachmentService:
    def __init__(
        self,
        ledger: PolicyLedgerProtocol,
        *,
        store: Optional[ObjectStoreProtocol] = None,
        verify: bool = False,
        bucket: Optional[str] = None,
    ) -> None:
        self._ledger = ledger
        self._store = store
        self._verify = verify
        self._bucket = bucket

    def attach(
        self,
        caller: CallerIdentity,
        object_path: str | ObjectPath,
        purpose: str,
        visibility: Optional[str] = None,
    ) -> AccessPolicy:
        """Validate `object_path` for the caller's `purpose` slot and attach a policy.

        Raises:
            InvalidObjectPath: malformed path, or purpose does not match the slot.
            ForeignObjectPath: owner segment is not the caller.
            UploadRejected: verification enabled and the stored object fails it.
            PolicyOwnershipConflict: the path already belongs to someone else.
        """
        path = object_path if isinstance(object_path, ObjectPath) else parse_object_path(object_path)
        if path.owner_id != caller.id:
            _log.info("attach refused: caller=%s path=%s reason=foreign_path", caller.id, path)
            raise ForeignObjectPath("foreign_path", "Invalid file path")
        if path.purpose != purpose:
            raise InvalidObjectPath("purpose_mismatch", "Invalid file path")
        if self._verify:
            if self._store is None:
                raise RuntimeError("verification_store_not_configured")
            verify_uploaded_object(self._store, path, bucket=self._bucket)
        policy = AccessPolicy(owner=caller.id, visibility=visibility or DEFAULT_VISIBILITY[purpose])
        return self._ledger.set_policy(path, policy)


__all__ = ["DEFAULT_VISIBILITY", "ObjectAttachmentService"]
