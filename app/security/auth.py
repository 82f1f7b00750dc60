"""JWT-backed authentication dependencies for FastAPI routers."""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterator
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from app.core.auth import AccessTokenPayload, get_business_context
from app.models import User
from app.models.business import STAFF_ROLES
from app.models.session import get_sessionmaker

from .events import Severity, log_security_event

ROLE_LEVELS = {role: level for level, role in enumerate(STAFF_ROLES)}
_SESSION_FACTORY: sessionmaker[Session] | None = None


@dataclasses.dataclass(frozen=True)
class Actor:
    """The authenticated user on whose behalf a request runs."""

    business_id: str
    user_id: str
    role: str
    name: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _get_session_factory() -> sessionmaker[Session]:
    global _SESSION_FACTORY
    if _SESSION_FACTORY is None:
        _SESSION_FACTORY = get_sessionmaker()
    return _SESSION_FACTORY


def reset_session_factory() -> None:
    """Forget the cached session factory (tests switch databases)."""

    global _SESSION_FACTORY
    _SESSION_FACTORY = None


def get_db_session() -> Iterator[Session]:
    """Yield a SQLAlchemy session for request-scoped dependencies."""

    session = _get_session_factory()()
    try:
        yield session
    finally:
        session.close()


async def get_current_token_payload(request: Request) -> AccessTokenPayload:
    return await get_business_context(request)


def get_current_user(
    payload: AccessTokenPayload = Depends(get_current_token_payload),
    session: Session = Depends(get_db_session),
) -> User:
    """Resolve the authenticated :class:`~app.models.User` from the token."""

    try:
        user_id = uuid.UUID(payload["user_id"])
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identifier in token.",
        ) from exc

    user = session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive or no longer exists.",
        )

    if str(user.business_id) != payload.get("business_id"):
        log_security_event(
            "TOKEN_BUSINESS_MISMATCH",
            {"user_id": str(user.id), "token_business_id": payload.get("business_id")},
            Severity.HIGH,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token business mismatch.",
        )

    return user


def require_role(min_role: str) -> Callable[..., Actor]:
    """Create a dependency ensuring the caller has at least ``min_role``."""

    if min_role not in ROLE_LEVELS:
        raise ValueError(f"Unknown role: {min_role}")

    def dependency(request: Request, user: User = Depends(get_current_user)) -> Actor:
        if not user.has_role(min_role):
            log_security_event(
                "INSUFFICIENT_ROLE",
                {
                    "user_id": str(user.id),
                    "role": user.role,
                    "required": min_role,
                    "path": request.url.path,
                },
                Severity.MEDIUM,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role.",
            )
        return Actor(
            business_id=str(user.business_id),
            user_id=str(user.id),
            role=user.role,
            name=user.name,
            email=user.email,
        )

    return dependency


__all__ = [
    "Actor",
    "ROLE_LEVELS",
    "get_current_token_payload",
    "get_current_user",
    "get_db_session",
    "require_role",
    "reset_session_factory",
]
