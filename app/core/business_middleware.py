"""Middleware that requires a business token on non-public routes."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .auth import get_business_context
from .business_context import reset_business_context, set_business_context

__all__ = ["BusinessContextMiddleware", "is_public_path"]


_PUBLIC_PATHS = {
    "/api/health",
    "/api/version",
    "/api/config",
    "/api/metrics",
    "/api/messages/inquiry",
    "/api/payments/intent",
    "/docs",
    "/redoc",
    "/openapi.json",
}
_PUBLIC_PREFIXES = ("/api/webhooks/", "/uploads/", "/docs/")
_PUBLIC_ACCOUNT_ACTIONS = {"register", "login", "refresh", "accept-invite"}


def is_public_path(method: str, path: str) -> bool:
    if method.upper() == "OPTIONS":
        return True
    if path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES):
        return True
    if path.startswith("/api/marketplace"):
        return method.upper() in {"GET", "HEAD"}
    if path.startswith("/api/accounts/"):
        action = path.removeprefix("/api/accounts/").split("/", 1)[0]
        return action in _PUBLIC_ACCOUNT_ACTIONS
    return False


class BusinessContextMiddleware(BaseHTTPMiddleware):
    """Validate bearer tokens and expose the business id to downstream code."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        if not self._is_configured() or is_public_path(
            request.method, request.url.path
        ):
            return await call_next(request)

        try:
            payload = await get_business_context(request)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers=exc.headers,
            )

        request.state.business_id = payload["business_id"]
        request.state.user_id = payload["user_id"]

        role = payload.get("role") or next(iter(payload.get("roles") or []), None)
        context_token = set_business_context(payload["business_id"], payload["user_id"], role)
        try:
            return await call_next(request)
        finally:
            reset_business_context(context_token)

    @staticmethod
    def _is_configured() -> bool:
        required = (
            os.getenv("AUTH_TOKEN_SECRET"),
            os.getenv("AUTH_TOKEN_AUDIENCE"),
            os.getenv("AUTH_TOKEN_ISSUER"),
        )
        return all(required)
