"""Utility functions for sanitization and timestamps."""

from datetime import datetime, timezone
from typing import Optional

import bleach

ALLOWED_TAGS = ["b", "i", "u", "em", "strong", "p", "br", "code", "pre", "ul", "ol", "li"]


def sanitize_question_text(text: str) -> str:
    """Sanitize question text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    sanitized = bleach.clean(text, tags=ALLOWED_TAGS, attributes={}, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: str) -> str:
    """Strip all HTML, leaving plain text (titles, announcements, names)."""
    return bleach.clean(text, tags=[], strip=True).strip()


def clean_optional(text):
    if text is None:
        return None
    return sanitize_plain_text(text) or None


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive datetime; aware values are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
