"""Tire shops and the staff accounts that run them.

Columns match ``app/migrations/001_create_business_tables.py``.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base

# Lowest to highest; each role can do everything the previous one can.
STAFF_ROLES = ("viewer", "operator", "admin")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Business(Base):
    """A tire shop or seller operating on the marketplace.

    Attributes:
        id: Primary key generated via ``gen_random_uuid`` in Postgres.
        name: Display name used in notifications and receipts.
        slug: Unique URL-safe handle.
        contact_email: Address receiving customer-activity e-mails.
        contact_phone: Public phone number.
        address: Street address shown on listings.
    """

    __tablename__ = "businesses"
    __table_args__ = (Index("ix_businesses_slug_unique", "slug", unique=True),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    slug: Mapped[str] = mapped_column(String(length=255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(length=320))
    contact_phone: Mapped[str | None] = mapped_column(String(length=32))
    address: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    users: Mapped[List["User"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    invites: Mapped[List["UserInvite"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class User(Base):
    """Staff member of a business.

    ``role`` is one of ``viewer`` (read-only dashboard), ``operator``
    (manages listings and replies to customers) or ``admin`` (also manages the
    team).
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_email_unique", "email", unique=True),
        Index("ix_users_business_id", "business_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="viewer",
        server_default=text("'viewer'"),
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    business: Mapped[Business] = relationship(back_populates="users", lazy="joined")
    refresh_tokens: Mapped[List["RefreshToken"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def has_role(self, min_role: str) -> bool:
        """Whether this staff member ranks at least ``min_role``."""

        if self.role not in STAFF_ROLES:
            return False
        return STAFF_ROLES.index(self.role) >= STAFF_ROLES.index(min_role)


class UserInvite(Base):
    """Pending invitation for a technician or manager to join a shop's staff."""

    __tablename__ = "user_invites"
    __table_args__ = (
        Index("ix_user_invites_token_unique", "token", unique=True),
        Index("ix_user_invites_business", "business_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    role: Mapped[str] = mapped_column(String(length=32), nullable=False)
    token: Mapped[str] = mapped_column(String(length=255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    accepted_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    business: Mapped[Business] = relationship(back_populates="invites")

    def is_redeemable(self, now: dt.datetime | None = None) -> bool:
        if self.accepted_at is not None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=dt.timezone.utc)
        return expires_at > (now or _utcnow())


class RefreshToken(Base):
    """A staff login session; only the SHA-256 of the refresh token is kept."""

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_id", "user_id"),
        Index("ix_refresh_tokens_token_hash", "token_hash", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    issued_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    user_agent: Mapped[str | None] = mapped_column(String(length=255))

    user: Mapped[User] = relationship(back_populates="refresh_tokens")


__all__ = ["Business", "RefreshToken", "STAFF_ROLES", "User", "UserInvite"]
