"""Request screening: IP reputation, rate limiting, URL scanning and headers."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from urllib.parse import unquote, unquote_plus

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .events import Severity, log_security_event
from .ip_reputation import ViolationType
from .rate_limiter import LimitClass, RateLimitDecision
from .throttling import get_client_ip
from .validation import contains_suspicious_patterns

__all__ = ["SECURITY_HEADERS", "SecurityMiddleware", "limit_class_for_path"]

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "X-DNS-Prefetch-Control": "off",
}

_UNSCREENED_PATHS = {"/api/health", "/api/metrics"}


def limit_class_for_path(path: str) -> LimitClass:
    if path.startswith("/api/accounts/login"):
        return LimitClass.LOGIN
    if path.startswith("/api/uploads"):
        return LimitClass.UPLOAD
    if "register" in path:
        return LimitClass.REGISTRATION
    return LimitClass.API


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at)),
    }


class SecurityMiddleware(BaseHTTPMiddleware):
    """Screen each request before it reaches the routers.

    The rate limiter and IP tracker are read from ``app.state.services`` so
    that a replaced service container takes effect immediately.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        path = request.url.path
        if path in _UNSCREENED_PATHS or request.method.upper() == "OPTIONS":
            return await call_next(request)

        services = request.app.state.services
        client_ip = get_client_ip(request)
        user_agent = request.headers.get("User-Agent")

        analysis = services.ip_reputation.analyze(client_ip, user_agent)
        if not analysis.allowed:
            log_security_event(
                "IP_REQUEST_REJECTED",
                {
                    "ip": client_ip,
                    "path": path,
                    "reason": analysis.reason,
                    "trust_score": analysis.trust_score,
                },
                Severity.MEDIUM,
            )
            return self._with_headers(
                JSONResponse(
                    status_code=status.HTTP_403_FORBIDDEN,
                    content={"detail": "Access denied."},
                )
            )

        rate_limiter = services.rate_limiter
        limit_class = limit_class_for_path(path)
        decision = rate_limiter.check(client_ip, limit_class)
        if not decision.allowed:
            services.ip_reputation.report_violation(client_ip, ViolationType.RATE_LIMIT)
            headers = _rate_limit_headers(decision)
            headers["Retry-After"] = str(decision.retry_after(rate_limiter.now()))
            return self._with_headers(
                JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={
                        "detail": "Too many requests. Please try again later.",
                        "retry_after": int(headers["Retry-After"]),
                    },
                    headers=headers,
                )
            )

        target = unquote(path)
        if request.url.query:
            target = f"{target}?{unquote_plus(request.url.query)}"
        if contains_suspicious_patterns(target):
            services.ip_reputation.report_violation(
                client_ip, ViolationType.SUSPICIOUS_INPUT
            )
            log_security_event(
                "SUSPICIOUS_URL",
                {"ip": client_ip, "path": path, "query": request.url.query},
                Severity.HIGH,
            )
            return self._with_headers(
                JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"detail": "Invalid request."},
                )
            )

        response = await call_next(request)
        for name, value in _rate_limit_headers(decision).items():
            response.headers.setdefault(name, value)
        return self._with_headers(response)

    @staticmethod
    def _with_headers(response: Response) -> Response:
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response
