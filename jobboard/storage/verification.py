"""
Helpers for verifying uploaded objects before a policy is attached.

Presigned uploads let the client write bytes we never see, so the declared
content type and size are not guaranteed. When REQUIRE_UPLOAD_VERIFY=true the
save step calls `verify_uploaded_object` and refuses paths whose stored
metadata falls outside the purpose rule. Off by default: content sniffing
and hashing are not performed.
"""
from __future__ import annotations

import logging
from typing import Optional

from jobboard.errors import UploadRejected
from jobboard.storage.config import get_object_bucket
from jobboard.storage.keys import ObjectPath
from jobboard.storage.ports import ObjectStoreProtocol
from jobboard.storage.purposes import rule_for
from jobboard.storage.upload_policy import normalize_content_type

_log = logging.getLogger("jobboard.storage")


def verify_uploaded_object(store: ObjectStoreProtocol, path: ObjectPath, *, bucket: Optional[str] = None) -> None:
    """Check the stored object's metadata against its purpose rule.

    Behavior:
        - Object must exist ("object_missing").
        - Reported size must be known and within the purpose limit
          ("size_unknown" / "size_mismatch").
        - Reported content type, when the store reports one, must be in the
          purpose allow-list ("content_type_mismatch").

    Raises:
        UploadRejected on any mismatch; StorageUnavailable propagates from the store.
    """
    rule = rule_for(path.purpose)
    if rule is None:
        raise UploadRejected("unknown_purpose", "Unknown upload purpose")
    head = store.head_object(bucket=bucket or get_object_bucket(), key=path.storage_key)
    if not head:
        raise UploadRejected("object_missing", "Uploaded file not found")
    length = head.get("content_length")
    try:
        size = int(length) if length is not None else None
    except (TypeError, ValueError):
        size = None
    if size is None:
        raise UploadRejected("size_unknown", "Uploaded file could not be verified")
    if size <= 0 or size > rule.max_size_bytes:
        _log.warning("upload verification failed: path=%s reason=size_mismatch size=%s", path, size)
        raise UploadRejected("size_mismatch", rule.size_message)
    ctype = normalize_content_type(head.get("content_type"))
    # Supabase reports application/octet-stream when the client sent no type.
    if ctype and ctype != "application/octet-stream" and ctype not in rule.allowed_content_types:
        _log.warning("upload verification failed: path=%s reason=content_type_mismatch type=%s", path, ctype)
        raise UploadRejected("content_type_mismatch", rule.type_message)


__all__ = ["verify_uploaded_object"]
