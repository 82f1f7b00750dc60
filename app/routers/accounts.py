"""Business account management API."""

from __future__ import annotations

import datetime as dt
import re
import secrets
import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.container import ServiceContainer, get_services
from app.models import Business, User, UserInvite
from app.security import (
    Actor,
    Severity,
    WeakPasswordError,
    check_password_policy,
    create_access_token,
    create_refresh_token,
    get_current_user,
    hash_password,
    log_security_event,
    password_needs_rehash,
    require_role,
    revoke_all_refresh_tokens,
    revoke_refresh_token,
    verify_password,
    verify_refresh_token,
)
from app.security.auth import get_db_session
from app.security.ip_reputation import ViolationType
from app.security.throttling import get_client_ip
from app.security.tokens import as_utc

router = APIRouter(prefix="/api/accounts", tags=["accounts"])

SessionDep = Annotated[Session, Depends(get_db_session)]
UserDep = Annotated[User, Depends(get_current_user)]
AdminDep = Annotated[Actor, Depends(require_role("admin"))]
ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
AUTH_SCHEME_BEARER: Literal["bearer"] = "bearer"

RoleName = Literal["viewer", "operator", "admin"]


class BusinessPayload(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    contact_email: str | None = None
    contact_phone: str | None = None


class UserPayload(BaseModel):
    id: uuid.UUID
    email: EmailStr
    name: str
    role: str


class TokenEnvelope(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = AUTH_SCHEME_BEARER
    expires_in: int = Field(..., description="Seconds until the access token expires")
    refresh_expires_in: int = Field(
        ..., description="Seconds until the refresh token expires"
    )
    roles: list[str]


class AuthenticatedResponse(BaseModel):
    business: BusinessPayload
    user: UserPayload
    tokens: TokenEnvelope


class MeResponse(BaseModel):
    business: BusinessPayload
    user: UserPayload


class RegisterBusinessRequest(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(default=None, pattern=r"^[a-z0-9-]{3,63}$")
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(default=None, max_length=32)
    admin_name: str = Field(..., min_length=1, max_length=255)
    admin_email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class InviteUserRequest(BaseModel):
    email: EmailStr
    role: RoleName = "viewer"
    expires_in: int = Field(default=60 * 60 * 24 * 7, ge=300, le=60 * 60 * 24 * 30)
    message: str | None = Field(default=None, max_length=2000)


class InviteResponse(BaseModel):
    token: str
    email: EmailStr
    role: str
    expires_at: dt.datetime


class AcceptInviteRequest(BaseModel):
    token: str
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)


class LogoutAllResponse(BaseModel):
    revoked: int


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _require_password_policy(password: str, email: str) -> None:
    try:
        check_password_policy(password, email=email)
    except WeakPasswordError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _normalize_email(email: str) -> str:
    return email.lower()


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return (slug or "business")[:63].ljust(3, "x")


def _business_payload(business: Business) -> BusinessPayload:
    return BusinessPayload(
        id=business.id,
        name=business.name,
        slug=business.slug,
        contact_email=business.contact_email,
        contact_phone=business.contact_phone,
    )


def _user_payload(user: User) -> UserPayload:
    return UserPayload(id=user.id, email=user.email, name=user.name, role=user.role)


def _authenticated(session: Session, user: User, request: Request) -> AuthenticatedResponse:
    """Issue an access/refresh pair for ``user`` and commit the session."""

    refresh_token, refresh_record = create_refresh_token(
        session, user, user_agent=request.headers.get("User-Agent")
    )
    access_token, access_expires_at = create_access_token(user)
    session.commit()

    now = _utcnow()
    return AuthenticatedResponse(
        business=_business_payload(user.business),
        user=_user_payload(user),
        tokens=TokenEnvelope(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=max(int((as_utc(access_expires_at) - now).total_seconds()), 0),
            refresh_expires_in=max(
                int((as_utc(refresh_record.expires_at) - now).total_seconds()), 0
            ),
            roles=[user.role],
        ),
    )


def _email_taken(session: Session, email: str) -> bool:
    return (
        session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        is not None
    )


@router.post(
    "/register",
    response_model=AuthenticatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_business(
    payload: RegisterBusinessRequest,
    request: Request,
    session: SessionDep,
) -> AuthenticatedResponse:
    """Create a business with an administrator user."""

    slug = payload.slug or _slugify(payload.business_name)
    email = _normalize_email(payload.admin_email)

    existing = session.execute(
        select(Business).where(Business.slug == slug)
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Slug already in use."
        )
    if _email_taken(session, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists."
        )
    _require_password_policy(payload.password, email)

    business = Business(
        name=payload.business_name,
        slug=slug,
        contact_email=str(payload.contact_email) if payload.contact_email else email,
        contact_phone=payload.contact_phone,
    )
    session.add(business)
    session.flush()

    admin = User(
        business_id=business.id,
        email=email,
        name=payload.admin_name,
        password_hash=hash_password(payload.password),
        role="admin",
    )
    session.add(admin)
    session.flush()
    session.refresh(admin)

    log_security_event(
        "BUSINESS_REGISTERED",
        {"business_id": str(business.id), "user_id": str(admin.id)},
        Severity.LOW,
    )
    return _authenticated(session, admin, request)


@router.post("/login", response_model=AuthenticatedResponse)
def login(
    payload: LoginRequest,
    request: Request,
    session: SessionDep,
    services: ServicesDep,
) -> AuthenticatedResponse:
    """Authenticate a user via e-mail and password."""

    email = _normalize_email(payload.email)
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        client_ip = get_client_ip(request)
        services.ip_reputation.report_violation(client_ip, ViolationType.AUTH_FAILURE)
        log_security_event(
            "AUTH_FAILURE", {"email": email, "ip": client_ip}, Severity.MEDIUM
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials."
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive."
        )

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(payload.password)

    return _authenticated(session, user, request)


@router.post("/refresh", response_model=AuthenticatedResponse)
def refresh(
    payload: RefreshRequest,
    request: Request,
    session: SessionDep,
) -> AuthenticatedResponse:
    """Exchange a refresh token for a new access/refresh pair."""

    token = verify_refresh_token(session, payload.refresh_token)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token."
        )

    user = session.get(User, token.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User is inactive."
        )

    revoke_refresh_token(token)
    return _authenticated(session, user, request)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    payload: RefreshRequest,
    session: SessionDep,
    current_user: UserDep,
) -> Response:
    """Revoke a single refresh token for the authenticated user."""

    token = verify_refresh_token(session, payload.refresh_token)
    if token is None or token.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid refresh token."
        )

    revoke_refresh_token(token)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout-all", response_model=LogoutAllResponse)
def logout_all(session: SessionDep, current_user: UserDep) -> LogoutAllResponse:
    """Revoke every refresh token of the authenticated user."""

    revoked = revoke_all_refresh_tokens(session, current_user)
    session.commit()
    return LogoutAllResponse(revoked=revoked)


@router.get("/me", response_model=MeResponse)
def me(current_user: UserDep) -> MeResponse:
    return MeResponse(
        business=_business_payload(current_user.business),
        user=_user_payload(current_user),
    )


@router.get("/members", response_model=list[UserPayload])
def list_members(session: SessionDep, actor: AdminDep) -> list[UserPayload]:
    users = (
        session.execute(
            select(User)
            .where(User.business_id == uuid.UUID(actor.business_id))
            .order_by(User.created_at)
        )
        .scalars()
        .all()
    )
    return [_user_payload(user) for user in users]


@router.post(
    "/invite", response_model=InviteResponse, status_code=status.HTTP_201_CREATED
)
def invite_user(
    payload: InviteUserRequest,
    session: SessionDep,
    actor: AdminDep,
) -> InviteResponse:
    """Issue an invitation for another user to join the business."""

    email = _normalize_email(payload.email)
    if _email_taken(session, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists."
        )

    business_id = uuid.UUID(actor.business_id)
    existing_invite = session.execute(
        select(UserInvite).where(
            UserInvite.business_id == business_id,
            UserInvite.email == email,
            UserInvite.accepted_at.is_(None),
        )
    ).scalar_one_or_none()
    if existing_invite:
        session.delete(existing_invite)
        session.flush()

    invite_token = secrets.token_urlsafe(32)
    expires_at = _utcnow() + dt.timedelta(seconds=payload.expires_in)
    session.add(
        UserInvite(
            business_id=business_id,
            email=email,
            role=payload.role,
            token=invite_token,
            message=payload.message,
            expires_at=expires_at,
        )
    )
    session.commit()

    return InviteResponse(
        token=invite_token, email=email, role=payload.role, expires_at=expires_at
    )


@router.post("/accept-invite", response_model=AuthenticatedResponse)
def accept_invite(
    payload: AcceptInviteRequest,
    request: Request,
    session: SessionDep,
) -> AuthenticatedResponse:
    """Convert an invitation token into an active user account."""

    invite = session.execute(
        select(UserInvite).where(UserInvite.token == payload.token)
    ).scalar_one_or_none()
    if invite is None or not invite.is_redeemable():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired invite."
        )

    email = _normalize_email(invite.email)
    if _email_taken(session, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists."
        )
    _require_password_policy(payload.password, email)

    user = User(
        business_id=invite.business_id,
        email=email,
        name=payload.name,
        password_hash=hash_password(payload.password),
        role=invite.role,
    )
    session.add(user)
    invite.accepted_at = _utcnow()
    session.flush()
    session.refresh(user)

    return _authenticated(session, user, request)
