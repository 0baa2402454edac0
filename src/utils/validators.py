"""Input validation helpers for free-text ticket fields.

Sanitization always runs before validation: callers pass the raw user text
through ``sanitize_input`` and validate the result.
"""

import re
from dataclasses import dataclass
from typing import Optional

TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_TITLE_ALLOWED = re.compile(r"^[A-Za-z0-9\s\-_.,!]+$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a single field check."""

    is_valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, reason: str) -> "ValidationResult":
        return cls(is_valid=False, error=reason)


def sanitize_input(text: str) -> str:
    """Strip control characters and surrounding whitespace."""
    return _CONTROL_CHARS.sub("", text or "").strip()


def validate_title(title: str) -> ValidationResult:
    """Check length bounds first, then the allowed character set."""
    if not title:
        return ValidationResult.fail("Title is required")
    if len(title) < TITLE_MIN_LENGTH:
        return ValidationResult.fail(
            f"Title must be at least {TITLE_MIN_LENGTH} characters long"
        )
    if len(title) > TITLE_MAX_LENGTH:
        return ValidationResult.fail(
            f"Title must not exceed {TITLE_MAX_LENGTH} characters"
        )
    if not _TITLE_ALLOWED.match(title):
        return ValidationResult.fail(
            "Title can only contain letters, numbers, spaces, and the "
            "following characters: - _ . , !"
        )
    return ValidationResult.ok()


def validate_description(
    description: str, min_length: int = DESCRIPTION_MIN_LENGTH
) -> ValidationResult:
    """Descriptions only carry a minimum length rule."""
    if not description:
        return ValidationResult.fail("Description is required")
    if len(description) < min_length:
        return ValidationResult.fail(
            f"Description must be at least {min_length} characters long"
        )
    return ValidationResult.ok()
