"""Which shop, staff member and staff role the current request acts for.

``BusinessContextMiddleware`` fills the context variable from the access
token. Repositories read :func:`get_current_business_id` to scope queries,
and security events use :func:`current_actor_details` to name the caller.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TypedDict

__all__ = [
    "BusinessRuntimeContext",
    "current_actor_details",
    "get_current_business_id",
    "get_current_role",
    "get_current_user_id",
    "reset_business_context",
    "set_business_context",
]


class BusinessRuntimeContext(TypedDict):
    business_id: str
    user_id: str
    role: str | None


_business_context: ContextVar[BusinessRuntimeContext | None] = ContextVar(
    "business_runtime_context", default=None
)


def set_business_context(
    business_id: str, user_id: str, role: str | None = None
) -> Token[BusinessRuntimeContext | None]:
    """Store the caller and return the token needed to restore the context."""

    return _business_context.set(
        {"business_id": business_id, "user_id": user_id, "role": role}
    )


def reset_business_context(token: Token[BusinessRuntimeContext | None]) -> None:
    _business_context.reset(token)


def get_current_business_id() -> str | None:
    """Return the shop being served, or ``None`` for anonymous traffic."""

    context = _business_context.get()
    if context is None:
        return None
    return context["business_id"]


def get_current_user_id() -> str | None:
    context = _business_context.get()
    if context is None:
        return None
    return context["user_id"]


def get_current_role() -> str | None:
    context = _business_context.get()
    if context is None:
        return None
    return context["role"]


def current_actor_details() -> dict[str, str]:
    """Business, user and role of the caller, omitting what is unknown."""

    context = _business_context.get()
    if context is None:
        return {}
    return {key: value for key, value in context.items() if value}
