"""
Helpers to build and parse user-scoped object paths.

Why:
    Keep one path shape for every upload purpose and one parser that every
    read and save path goes through, instead of per-route regexes that drift.

Conventions:
    - Canonical path: /users/{owner}/{purpose}-{epoch_ms}-{nonce}.{ext}
    - Storage key (bucket-relative): users/{owner}/{purpose}-{epoch_ms}-{nonce}.{ext}
    - Entity URL served to clients: /objects/users/{owner}/...

Security:
    - Parsing rejects traversal sequences, backslashes, percent-encoding and
      anything outside the exact shape before any lookup happens.
    - Owner ids are validated, never sanitized: rewriting an id could map two
      distinct users onto the same prefix.
    - The extension must belong to the purpose's allow-list.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from jobboard.errors import InvalidObjectPath
from jobboard.storage.purposes import PURPOSES, allowed_extensions

OBJECTS_URL_PREFIX = "/objects"

OWNER_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")
NONCE_RE = re.compile(r"[a-z0-9]{8,32}")
OBJECT_PATH_RE = re.compile(
    r"/users/(?P<owner>[A-Za-z0-9_-]{1,64})/"
    r"(?P<purpose>[a-z]+)-(?P<epoch_ms>[0-9]{10,16})-(?P<nonce>[a-z0-9]{8,32})"
    r"\.(?P<ext>[a-z0-9]{2,5})"
)


@dataclass(frozen=True, slots=True)
class ObjectPath:
    """A minted, immutable object path. Construct via make/parse helpers."""

    owner_id: str
    purpose: str
    epoch_ms: int
    nonce: str
    extension: str

    def __str__(self) -> str:
        return f"/users/{self.owner_id}/{self.filename}"

    @property
    def filename(self) -> str:
        return f"{self.purpose}-{self.epoch_ms}-{self.nonce}.{self.extension}"

    @property
    def storage_key(self) -> str:
        """Bucket-relative key (no leading slash)."""
        return str(self)[1:]

    @property
    def entity_url(self) -> str:
        """Path under which the object is served by the retrieval route."""
        return f"{OBJECTS_URL_PREFIX}{self}"


def make_object_path(*, owner_id: str, purpose: str, extension: str, epoch_ms: int, nonce: str) -> ObjectPath:
    """Build an ObjectPath from server-controlled parts.

    Raises:
        InvalidObjectPath: when any part falls outside the canonical shape.
    """
    path = ObjectPath(
        owner_id=owner_id,
        purpose=purpose,
        epoch_ms=int(epoch_ms),
        nonce=nonce,
        extension=extension,
    )
    # Round-trip through the parser so built and parsed paths obey one rule set.
    return parse_object_path(str(path))


def parse_object_path(raw: str, *, allow_url_prefix: bool = True) -> ObjectPath:
    """Parse a canonical path (or its /objects entity URL) into an ObjectPath.

    With `allow_url_prefix=False` only the bare canonical path is accepted.

    Returns the parsed value. Raises InvalidObjectPath with reason
    "path_traversal" or "invalid_path".
    """
    if not isinstance(raw, str) or not raw:
        raise InvalidObjectPath("invalid_path", "Invalid object path")
    if ".." in raw or "\\" in raw or "%" in raw or "\x00" in raw:
        raise InvalidObjectPath("path_traversal", "Invalid object path")
    value = raw
    if allow_url_prefix and value.startswith(OBJECTS_URL_PREFIX + "/"):
        value = value[len(OBJECTS_URL_PREFIX):]
    match = OBJECT_PATH_RE.fullmatch(value)
    if not match:
        raise InvalidObjectPath("invalid_path", "Invalid object path")
    purpose = match.group("purpose")
    ext = match.group("ext")
    if purpose not in PURPOSES or ext not in allowed_extensions(purpose):
        raise InvalidObjectPath("invalid_path", "Invalid object path")
    return ObjectPath(
        owner_id=match.group("owner"),
        purpose=purpose,
        epoch_ms=int(match.group("epoch_ms")),
        nonce=match.group("nonce"),
        extension=ext,
    )


def parse_storage_key(key: str) -> ObjectPath:
    """Parse a bucket-relative key (as used by the local upload route)."""
    if not isinstance(key, str) or key.startswith("/"):
        raise InvalidObjectPath("invalid_path", "Invalid object path")
    return parse_object_path("/" + key, allow_url_prefix=False)


def is_valid_owner_id(value: str) -> bool:
    return isinstance(value, str) and bool(OWNER_ID_RE.fullmatch(value))


__all__ = [
    "OBJECTS_URL_PREFIX",
    "ObjectPath",
    "make_object_path",
    "parse_object_path",
    "parse_storage_key",
    "is_valid_owner_id",
]
