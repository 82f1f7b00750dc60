"""Input validation helpers shared by the HTTP layer and the services.

The suspicious-pattern scan looks for SQL-injection shapes, script injection
markers and path traversal sequences. It targets attack payloads rather than
vocabulary, so ordinary customer text ("Can you update me when the 225/45R17
set comes in?") passes.
"""

from __future__ import annotations

import re
from decimal import Decimal

from pydantic import EmailStr, TypeAdapter, ValidationError

__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "InputValidationError",
    "MAX_IMAGE_SIZE",
    "MAX_PRICE",
    "contains_suspicious_patterns",
    "is_valid_email",
    "is_valid_phone_number",
    "is_valid_price",
    "sanitize_string",
    "validate_image_upload",
]

MAX_STRING_LENGTH = 1000
MAX_EMAIL_LENGTH = 254
MAX_PRICE = Decimal("999999")
MAX_IMAGE_SIZE = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class InputValidationError(ValueError):
    """Raised when user-supplied input fails validation."""


_SQL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bunion\s+(all\s+)?select\b",
        r"\bselect\s+\*\s+from\b",
        r"\binsert\s+into\b",
        r"\bdelete\s+from\b",
        r"\bdrop\s+(table|database|schema)\b",
        r"\btruncate\s+table\b",
        r"\balter\s+table\b",
        r"\bupdate\s+\w+\s+set\s+\w+\s*=",
        r"\bexec(ute)?\s+(xp_|sp_)\w+",
        r"'\s*(or|and)\s+'?\w+'?\s*=\s*'?\w+",
        r";\s*(select|insert|update|delete|drop|alter|create|truncate)\b",
        r"'\s*(--|#)",
        r"/\*.*?\*/",
        r"\b(sleep|benchmark|waitfor\s+delay)\s*\(",
    )
)

_XSS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<\s*script\b",
        r"<\s*/\s*script\s*>",
        r"<\s*(iframe|object|embed|svg|applet|meta|link)\b",
        r"\b(javascript|vbscript)\s*:",
        r"\bon(load|error|click|mouseover|focus|blur|submit|change|key\w+)\s*=",
        r"\beval\s*\(",
        r"\bexpression\s*\(",
        r"document\s*\.\s*(cookie|location|write)",
        r"data\s*:\s*text/html",
    )
)

_PATH_TRAVERSAL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\.\./",
        r"\.\.\\",
        r"%2e%2e(%2f|%5c|/|\\)",
        r"%252e%252e",
        r"/etc/(passwd|shadow|hosts)",
        r"[a-z]:\\windows\\",
    )
)

_SUSPICIOUS_PATTERNS = _SQL_PATTERNS + _XSS_PATTERNS + _PATH_TRAVERSAL_PATTERNS
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]{10,20}$")
_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def contains_suspicious_patterns(value: str | None) -> bool:
    """Return ``True`` when ``value`` looks like an injection payload."""

    if not value:
        return False
    return any(pattern.search(value) for pattern in _SUSPICIOUS_PATTERNS)


def sanitize_string(value: str | None, *, max_length: int = MAX_STRING_LENGTH) -> str:
    """Strip markup delimiters and control characters, trim and cap ``value``."""

    if not value:
        return ""
    cleaned = value.replace("<", "").replace(">", "")
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned.strip()[:max_length]


def is_valid_email(value: str | None) -> bool:
    if not value or len(value) > MAX_EMAIL_LENGTH:
        return False
    if contains_suspicious_patterns(value):
        return False
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


def is_valid_phone_number(value: str | None) -> bool:
    if not value:
        return False
    return bool(_PHONE_PATTERN.match(value.strip()))


def is_valid_price(value: Decimal | float | int | None) -> bool:
    if value is None:
        return False
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        return False
    if not amount.is_finite():
        return False
    return Decimal("0") <= amount <= MAX_PRICE


def validate_image_upload(content_type: str | None, size: int) -> str:
    """Validate an image upload and return the file extension to store it with.

    Raises:
        InputValidationError: If the MIME type is not JPEG, PNG or WebP, or the
            file is empty or larger than 10 MB.
    """

    normalized = (content_type or "").lower()
    if normalized not in ALLOWED_IMAGE_TYPES:
        raise InputValidationError(
            "Invalid file type. Only JPEG, PNG, and WebP images are allowed."
        )
    if size <= 0:
        raise InputValidationError("File is empty.")
    if size > MAX_IMAGE_SIZE:
        raise InputValidationError("File too large. Maximum size is 10MB.")
    return ALLOWED_IMAGE_TYPES[normalized]
