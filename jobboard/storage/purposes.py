"""
Purpose classes and their upload allow-lists.

One table drives every upload endpoint: which content types a purpose
accepts, how large the object may be and which extension the server assigns.
Extensions come only from CONTENT_TYPE_EXTENSIONS; nothing a client sends is
ever used to build a file name.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from jobboard.storage.config import (
    get_profile_image_max_upload_bytes,
    get_requirement_max_upload_bytes,
    get_resume_max_upload_bytes,
)

PURPOSE_PROFILE = "profile"
PURPOSE_RESUME = "resume"
PURPOSE_REQUIREMENT = "requirement"
PURPOSES = frozenset({PURPOSE_PROFILE, PURPOSE_RESUME, PURPOSE_REQUIREMENT})

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
DOCUMENT_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

# Server-side content-type -> extension map. "image/jpg" is a common
# browser alias for JPEG and maps to the same extension.
CONTENT_TYPE_EXTENSIONS: Mapping[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}


@dataclass(frozen=True, slots=True)
class PurposeRule:
    """Immutable allow-list entry used at request-handling time."""

    purpose: str
    allowed_content_types: frozenset[str]
    max_size_bytes: int
    type_message: str

    @property
    def allowed_extensions(self) -> frozenset[str]:
        return frozenset(CONTENT_TYPE_EXTENSIONS[ct] for ct in self.allowed_content_types)

    @property
    def size_message(self) -> str:
        return f"File size must be under {self.max_size_bytes // (1024 * 1024)}MB"


_RULE_SOURCES: Mapping[str, tuple[frozenset[str], Callable[[], int], str]] = {
    PURPOSE_PROFILE: (
        IMAGE_CONTENT_TYPES,
        get_profile_image_max_upload_bytes,
        "Invalid file type. Only JPEG, PNG, and WebP images allowed.",
    ),
    PURPOSE_RESUME: (
        DOCUMENT_CONTENT_TYPES,
        get_resume_max_upload_bytes,
        "Invalid file type. Only PDF and Word documents (.pdf, .doc, .docx) are allowed.",
    ),
    PURPOSE_REQUIREMENT: (
        DOCUMENT_CONTENT_TYPES,
        get_requirement_max_upload_bytes,
        "Invalid file type. Only PDF and Word documents (.pdf, .doc, .docx) are allowed.",
    ),
}


def rule_for(purpose: str) -> PurposeRule | None:
    """Return the current rule for `purpose`, or None for unknown purposes.

    Limits are resolved at call time so configuration changes apply without
    a reload.
    """
    source = _RULE_SOURCES.get(purpose)
    if source is None:
        return None
    content_types, max_size, message = source
    return PurposeRule(
        purpose=purpose,
        allowed_content_types=content_types,
        max_size_bytes=max_size(),
        type_message=message,
    )


def allowed_extensions(purpose: str) -> frozenset[str]:
    rule = rule_for(purpose)
    return rule.allowed_extensions if rule else frozenset()


__all__ = [
    "PURPOSE_PROFILE",
    "PURPOSE_RESUME",
    "PURPOSE_REQUIREMENT",
    "PURPOSES",
    "CONTENT_TYPE_EXTENSIONS",
    "PurposeRule",
    "rule_for",
    "allowed_extensions",
]
