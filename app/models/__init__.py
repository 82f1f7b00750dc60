"""SQLAlchemy declarative base and account models.

Businesses, their users, invitations and refresh tokens are stored through
SQLAlchemy. Marketplace records (listings, payments, conversations) live in
the repositories of their own packages.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


from .business import Business, RefreshToken, User, UserInvite


__all__ = [
    "Base",
    "Business",
    "RefreshToken",
    "User",
    "UserInvite",
]
