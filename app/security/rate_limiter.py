"""Fixed-window rate limiting keyed by identifier and limit class.

Counting is delegated to the ``limits`` package (the engine behind slowapi).
Counters live in a ``limits`` storage: ``memory://`` serves a single process,
and any other storage URI ``limits`` understands (``redis://``,
``memcached://``) shares the windows between workers.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
import time
from enum import Enum

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter as FixedWindowStrategy

from .events import Severity, log_security_event

__all__ = [
    "FixedWindowRateLimiter",
    "LIMITS",
    "LimitClass",
    "RateLimitDecision",
    "RateLimitRule",
]

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "marketplace"


class LimitClass(str, Enum):
    API = "API"
    LOGIN = "LOGIN"
    UPLOAD = "UPLOAD"
    REGISTRATION = "REGISTRATION"


@dataclasses.dataclass(frozen=True)
class RateLimitRule:
    requests: int
    window_seconds: int

    def as_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(
            self.requests, self.window_seconds, namespace=KEY_NAMESPACE
        )


LIMITS: dict[LimitClass, RateLimitRule] = {
    LimitClass.API: RateLimitRule(requests=100, window_seconds=60),
    LimitClass.LOGIN: RateLimitRule(requests=5, window_seconds=15 * 60),
    LimitClass.UPLOAD: RateLimitRule(requests=10, window_seconds=5 * 60),
    LimitClass.REGISTRATION: RateLimitRule(requests=3, window_seconds=60 * 60),
}


@dataclasses.dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float
    limit: int

    def retry_after(self, now: float) -> int:
        """Seconds until the window resets, never less than one."""

        return max(1, math.ceil(self.reset_at - now))


class FixedWindowRateLimiter:
    """Count requests per ``(identifier, limit class)`` inside fixed windows.

    Args:
        storage: A ``limits`` storage instance. Defaults to one built from
            ``storage_uri``.
        storage_uri: ``limits`` storage URI used when ``storage`` is omitted.
        limits: Overrides for the per-class rules in :data:`LIMITS`.
    """

    def __init__(
        self,
        storage: Storage | None = None,
        *,
        storage_uri: str = "memory://",
        limits: dict[LimitClass, RateLimitRule] | None = None,
    ) -> None:
        self.storage = storage or storage_from_string(storage_uri)
        self._strategy = FixedWindowStrategy(self.storage)
        self._items = {
            limit_class: rule.as_item() for limit_class, rule in (limits or LIMITS).items()
        }
        for limit_class in LimitClass:
            self._items.setdefault(limit_class, LIMITS[limit_class].as_item())
        # Keys seen since the last sweep; ``limits`` storages cannot be enumerated.
        self._tracked: dict[str, tuple[str, LimitClass]] = {}
        self._tracked_lock = threading.Lock()

    def _key(self, identifier: str, limit_class: LimitClass) -> str:
        return self._items[limit_class].key_for(limit_class.value, identifier)

    def rule_for(self, limit_class: LimitClass) -> RateLimitRule:
        item = self._items[limit_class]
        return RateLimitRule(requests=item.amount, window_seconds=item.get_expiry())

    def now(self) -> float:
        return time.time()

    def check(
        self, identifier: str, limit_class: LimitClass = LimitClass.API
    ) -> RateLimitDecision:
        """Count one request and report whether it fits in the current window."""

        item = self._items[limit_class]
        key = self._key(identifier, limit_class)
        with self._tracked_lock:
            self._tracked[key] = (identifier, limit_class)

        allowed = self._strategy.hit(item, limit_class.value, identifier)
        reset_at, remaining = self._strategy.get_window_stats(
            item, limit_class.value, identifier
        )

        count = self.storage.get(key)
        if count > item.amount * 2:
            log_security_event(
                "RATE_LIMIT_ABUSE",
                {
                    "identifier": identifier,
                    "limit_class": limit_class.value,
                    "count": count,
                    "limit": item.amount,
                },
                Severity.HIGH,
            )

        return RateLimitDecision(
            allowed=allowed,
            remaining=remaining,
            reset_at=reset_at,
            limit=item.amount,
        )

    def reset(self, identifier: str, limit_class: LimitClass = LimitClass.API) -> None:
        self._strategy.clear(self._items[limit_class], limit_class.value, identifier)
        with self._tracked_lock:
            self._tracked.pop(self._key(identifier, limit_class), None)

    def is_blocked(
        self, identifier: str, limit_class: LimitClass = LimitClass.API
    ) -> bool:
        item = self._items[limit_class]
        return self.storage.get(self._key(identifier, limit_class)) > item.amount

    def sweep(self) -> int:
        """Forget counters whose window has ended and return how many were removed."""

        with self._tracked_lock:
            tracked = list(self._tracked.items())
        expired = [key for key, _ in tracked if self.storage.get(key) == 0]
        with self._tracked_lock:
            for key in expired:
                self._tracked.pop(key, None)
        for key in expired:
            self.storage.clear(key)
        if expired:
            logger.debug("Removed %d expired rate-limit entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        with self._tracked_lock:
            tracked = list(self._tracked.items())
        counts = [
            (self.storage.get(key), self._items[limit_class].amount)
            for key, (_, limit_class) in tracked
        ]
        live = [(count, amount) for count, amount in counts if count > 0]
        return {
            "total_entries": len(live),
            "blocked_entries": sum(1 for count, amount in live if count > amount),
        }
