"""
Path Policy: turn a declared upload into a server-controlled object path.

Why:
    Every upload endpoint goes through `mint_object_path`, so the allow-list
    table in `purposes.py` is the only place content types, size ceilings and
    extensions are decided.

Behavior:
    - Pure: no I/O, no store access. The minted path is not backed by bytes yet.
    - The owner segment is always the caller id passed in by the route; no
      client-supplied owner or file name is accepted.
    - Timestamp and nonce are generated here; the nonce is random so two
      uploads in the same millisecond never collide.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from jobboard.errors import UploadRejected
from jobboard.storage.keys import ObjectPath, is_valid_owner_id, make_object_path
from jobboard.storage.purposes import CONTENT_TYPE_EXTENSIONS, rule_for


@dataclass(frozen=True, slots=True)
class UploadIntent:
    """Validated upload declaration; lives only for the grant's TTL."""

    owner_id: str
    purpose: str
    declared_content_type: str
    declared_size: int


def normalize_content_type(value: object) -> str:
    """Lower-case and strip parameters (`; charset=...`) from a MIME type."""
    if not isinstance(value, str):
        return ""
    return value.split(";", 1)[0].strip().lower()


def extension_for(content_type: str) -> str:
    """Resolve the server-side extension for a content type.

    Checked independently of the purpose allow-list: an unmapped type is
    rejected even if a table edit let it into an allow-list.
    """
    ext = CONTENT_TYPE_EXTENSIONS.get(content_type)
    if not ext:
        raise UploadRejected("unsupported_content_type", "Unsupported file type")
    return ext


def validate_upload_intent(
    caller_id: str, purpose: str, declared_content_type: object, declared_size: object
) -> UploadIntent:
    """Check a declared upload against its purpose rule.

    Raises:
        UploadRejected: unknown_purpose, content_type_not_allowed,
            invalid_size, size_exceeded or invalid_owner_id.
    """
    rule = rule_for(purpose)
    if rule is None:
        raise UploadRejected("unknown_purpose", "Unknown upload purpose")
    content_type = normalize_content_type(declared_content_type)
    if content_type not in rule.allowed_content_types:
        raise UploadRejected("content_type_not_allowed", rule.type_message)
    # bool is an int subclass; True must not count as a one-byte file.
    if isinstance(declared_size, bool) or not isinstance(declared_size, int) or declared_size <= 0:
        raise UploadRejected("invalid_size", "File size must be a positive integer")
    if declared_size > rule.max_size_bytes:
        raise UploadRejected("size_exceeded", rule.size_message)
    if not is_valid_owner_id(caller_id):
        raise UploadRejected("invalid_owner_id", "Caller id cannot be used in an object path")
    return UploadIntent(
        owner_id=caller_id,
        purpose=purpose,
        declared_content_type=content_type,
        declared_size=declared_size,
    )


def mint_object_path(
    caller_id: str, purpose: str, declared_content_type: object, declared_size: object
) -> tuple[ObjectPath, UploadIntent]:
    """Validate the declaration and mint a fresh path owned by the caller."""
    intent = validate_upload_intent(caller_id, purpose, declared_content_type, declared_size)
    ext = extension_for(intent.declared_content_type)
    path = make_object_path(
        owner_id=intent.owner_id,
        purpose=intent.purpose,
        extension=ext,
        epoch_ms=int(time.time() * 1000),
        nonce=secrets.token_hex(8),
    )
    return path, intent


__all__ = [
    "UploadIntent",
    "normalize_content_type",
    "extension_for",
    "validate_upload_intent",
    "mint_object_path",
]
