"""Staff sessions: short-lived JWT access tokens plus rotating refresh tokens.

Access tokens carry the shop id and slug and the staff member's role.
Refresh tokens are random strings; only their SHA-256 is stored.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import hashlib
import os
import secrets
from functools import lru_cache
from typing import Any, cast

import jwt
from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.orm import Session

from app.models import RefreshToken, User


@dataclasses.dataclass(frozen=True)
class JWTSettings:
    """Signing settings read from the ``AUTH_TOKEN_*`` variables."""

    secret: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 60 * 60 * 24 * 14


@lru_cache(maxsize=1)
def get_jwt_settings() -> JWTSettings:
    secret = os.getenv("AUTH_TOKEN_SECRET")
    issuer = os.getenv("AUTH_TOKEN_ISSUER")
    audience = os.getenv("AUTH_TOKEN_AUDIENCE")
    if not secret or not issuer or not audience:
        raise RuntimeError(
            "AUTH_TOKEN_SECRET, AUTH_TOKEN_ISSUER and AUTH_TOKEN_AUDIENCE must be set.",
        )
    return JWTSettings(
        secret=secret,
        issuer=issuer,
        audience=audience,
        algorithm=os.getenv("AUTH_TOKEN_ALGORITHM", "HS256"),
        access_token_ttl_seconds=int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "900")),
        refresh_token_ttl_seconds=int(
            os.getenv("REFRESH_TOKEN_TTL_SECONDS", str(60 * 60 * 24 * 14))
        ),
    )


def reset_jwt_settings_cache() -> None:
    get_jwt_settings.cache_clear()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def as_utc(value: dt.datetime) -> dt.datetime:
    """Interpret naive datetimes (as returned by SQLite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def create_access_token(
    user: User, *, settings: JWTSettings | None = None
) -> tuple[str, dt.datetime]:
    """Return a signed access token for the staff member and its expiry."""

    settings = settings or get_jwt_settings()
    now = _utcnow()
    expires_at = now + dt.timedelta(seconds=settings.access_token_ttl_seconds)
    payload: dict[str, Any] = {
        "business_id": str(user.business_id),
        "business_slug": user.business.slug,
        "user_id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "roles": [user.role] if user.role else [],
        "iss": settings.issuer,
        "aud": settings.audience,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": "access",
    }
    token = jwt.encode(payload, settings.secret, algorithm=settings.algorithm)
    return str(token), expires_at


def create_refresh_token(
    session: Session,
    user: User,
    *,
    user_agent: str | None = None,
    settings: JWTSettings | None = None,
) -> tuple[str, RefreshToken]:
    """Open a login session for ``user``; the raw token is returned once and never stored."""

    settings = settings or get_jwt_settings()
    raw_token = secrets.token_urlsafe(48)
    now = _utcnow()
    record = RefreshToken(
        user_id=user.id,
        token_hash=_hash_token(raw_token),
        issued_at=now,
        expires_at=now + dt.timedelta(seconds=settings.refresh_token_ttl_seconds),
        user_agent=(user_agent or "")[:255] or None,
    )
    session.add(record)
    session.flush()
    return raw_token, record


def verify_refresh_token(session: Session, raw_token: str) -> RefreshToken | None:
    """Return the live refresh token matching ``raw_token``, if any."""

    if not raw_token:
        return None
    token = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_token))
    ).scalar_one_or_none()
    if token is None or token.revoked_at is not None:
        return None
    if as_utc(token.expires_at) <= _utcnow():
        return None
    return token


def revoke_refresh_token(token: RefreshToken, *, when: dt.datetime | None = None) -> None:
    token.revoked_at = when or _utcnow()


def revoke_all_refresh_tokens(
    session: Session, user: User, *, when: dt.datetime | None = None
) -> int:
    """Revoke every live refresh token of ``user`` and return the count."""

    result = session.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user.id)
        .where(RefreshToken.revoked_at.is_(None))
        .values(revoked_at=when or _utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return int(cast(CursorResult[Any], result).rowcount or 0)


__all__ = [
    "JWTSettings",
    "as_utc",
    "create_access_token",
    "create_refresh_token",
    "get_jwt_settings",
    "reset_jwt_settings_cache",
    "revoke_all_refresh_tokens",
    "revoke_refresh_token",
    "verify_refresh_token",
]
