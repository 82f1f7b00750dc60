"""Structured security-event logging.

Security-relevant rejections (suspicious input, unauthorized mutations,
invalid webhook signatures, rate-limit abuse, IP blocks) are recorded on the
``app.security`` logger with a severity tag. ``init_logging`` routes that
logger to ``security.log``.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from enum import Enum
from typing import Any, Mapping

from app.app_logging import SECURITY_LOGGER_NAME, _scrub
from app.core.business_context import current_actor_details

__all__ = ["Severity", "log_security_event"]

logger = logging.getLogger(SECURITY_LOGGER_NAME)


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}


def log_security_event(
    event: str,
    details: Mapping[str, Any] | None = None,
    severity: Severity = Severity.MEDIUM,
) -> dict[str, Any]:
    """Record ``event`` with scrubbed ``details`` and return the logged entry."""

    entry: dict[str, Any] = {
        "event": event,
        "severity": severity.value,
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "details": _scrub(dict(details or {})),
    }
    actor = current_actor_details()
    if actor:
        entry["actor"] = actor
    logger.log(
        _LEVELS[severity],
        "SECURITY_EVENT %s",
        json.dumps(entry, default=str),
        extra={"security_event": entry},
    )
    return entry
