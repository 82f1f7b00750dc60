"""Password hashing and the password policy for shop staff accounts."""

from __future__ import annotations

import re

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")


class WeakPasswordError(ValueError):
    """Raised when a new staff password does not meet the policy."""


def check_password_policy(password: str, *, email: str | None = None) -> None:
    """Reject staff passwords that mix no letters and digits or embed the e-mail name.

    Length is validated by the request schemas.
    """

    if not _LETTER.search(password) or not _DIGIT.search(password):
        raise WeakPasswordError("Password must contain letters and numbers.")
    local_part = (email or "").partition("@")[0].lower()
    if len(local_part) >= 4 and local_part in password.lower():
        raise WeakPasswordError("Password must not contain your e-mail name.")


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must be non-empty.")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    """Return ``True`` when ``password`` matches ``hashed_password``."""

    if not password or not hashed_password:
        return False
    return _pwd_context.verify(password, hashed_password)


def password_needs_rehash(hashed_password: str) -> bool:
    """Whether ``hashed_password`` was produced with outdated Argon2 parameters."""

    return _pwd_context.needs_update(hashed_password)


__all__ = [
    "WeakPasswordError",
    "check_password_policy",
    "hash_password",
    "password_needs_rehash",
    "verify_password",
]
