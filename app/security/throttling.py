"""Client identification and per-endpoint quotas (SlowAPI)."""

from __future__ import annotations

from fastapi import Request
from slowapi import Limiter

__all__ = ["get_client_ip", "limiter"]


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting and reputation.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is None:
        return "unknown"
    return request.client.host


limiter = Limiter(key_func=get_client_ip)
