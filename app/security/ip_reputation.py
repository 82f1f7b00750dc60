"""Per-IP reputation tracking used to reject abusive clients."""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
import re
import threading
import time
from collections.abc import Callable, Iterator
from enum import Enum
from typing import Protocol

from .events import Severity, log_security_event

__all__ = [
    "IPAnalysis",
    "IPRecord",
    "IPReputationTracker",
    "InMemoryReputationStore",
    "ReputationStore",
    "ViolationType",
]

logger = logging.getLogger(__name__)

AUTO_BLOCK_VIOLATIONS = 10
MIN_TRUST_SCORE = 30
RECORD_RETENTION_SECONDS = 30 * 24 * 60 * 60
_MAX_USER_AGENTS = 20

_AUTOMATED_AGENT = re.compile(r"bot|crawler|spider|scraper|python|curl|wget|postman", re.I)
_PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16")
)


class ViolationType(str, Enum):
    RATE_LIMIT = "RATE_LIMIT"
    SUSPICIOUS_INPUT = "SUSPICIOUS_INPUT"
    AUTH_FAILURE = "AUTH_FAILURE"
    MALICIOUS_REQUEST = "MALICIOUS_REQUEST"


@dataclasses.dataclass
class IPRecord:
    ip: str
    first_seen: float
    last_seen: float
    request_count: int = 0
    violations: int = 0
    blocked: bool = False
    user_agents: list[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class IPAnalysis:
    allowed: bool
    trust_score: int
    reason: str | None = None


class ReputationStore(Protocol):
    def get(self, ip: str) -> IPRecord | None: ...

    def set(self, record: IPRecord) -> None: ...

    def delete(self, ip: str) -> None: ...

    def records(self) -> Iterator[IPRecord]: ...


class InMemoryReputationStore:
    def __init__(self) -> None:
        self._records: dict[str, IPRecord] = {}
        self._lock = threading.Lock()

    def get(self, ip: str) -> IPRecord | None:
        with self._lock:
            record = self._records.get(ip)
            if record is None:
                return None
            return dataclasses.replace(record, user_agents=list(record.user_agents))

    def set(self, record: IPRecord) -> None:
        with self._lock:
            self._records[record.ip] = dataclasses.replace(
                record, user_agents=list(record.user_agents)
            )

    def delete(self, ip: str) -> None:
        with self._lock:
            self._records.pop(ip, None)

    def records(self) -> Iterator[IPRecord]:
        with self._lock:
            snapshot = [dataclasses.replace(r) for r in self._records.values()]
        return iter(snapshot)


def is_private_address(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in network for network in _PRIVATE_NETWORKS)


class IPReputationTracker:
    """Track request counts and violations per IP and derive a trust score."""

    def __init__(
        self,
        store: ReputationStore | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store or InMemoryReputationStore()
        self._clock = clock
        self._lock = threading.Lock()

    def _load(self, ip: str) -> IPRecord:
        now = self._clock()
        record = self._store.get(ip)
        if record is None:
            record = IPRecord(ip=ip, first_seen=now, last_seen=now)
        return record

    @staticmethod
    def trust_score(record: IPRecord, user_agent: str | None) -> int:
        score = max(0, 100 - record.violations * 10)
        if not user_agent or _AUTOMATED_AGENT.search(user_agent):
            score -= 20
        if is_private_address(record.ip):
            score -= 15
        return max(0, score)

    def analyze(self, ip: str, user_agent: str | None = None) -> IPAnalysis:
        """Register a request from ``ip`` and decide whether to serve it."""

        with self._lock:
            record = self._load(ip)
            record.last_seen = self._clock()
            record.request_count += 1
            if user_agent and user_agent not in record.user_agents:
                record.user_agents.append(user_agent)
                del record.user_agents[:-_MAX_USER_AGENTS]
            self._store.set(record)

        score = self.trust_score(record, user_agent)
        if record.blocked:
            return IPAnalysis(allowed=False, trust_score=score, reason="IP is blocked")
        if score <= MIN_TRUST_SCORE:
            return IPAnalysis(
                allowed=False, trust_score=score, reason="Low trust score"
            )
        return IPAnalysis(allowed=True, trust_score=score)

    def report_violation(self, ip: str, violation: ViolationType) -> IPRecord:
        with self._lock:
            record = self._load(ip)
            record.violations += 1
            newly_blocked = (
                not record.blocked and record.violations >= AUTO_BLOCK_VIOLATIONS
            )
            if newly_blocked:
                record.blocked = True
            self._store.set(record)

        log_security_event(
            "IP_VIOLATION",
            {"ip": ip, "type": violation.value, "violations": record.violations},
            Severity.MEDIUM,
        )
        if newly_blocked:
            log_security_event(
                "IP_AUTO_BLOCKED",
                {"ip": ip, "violations": record.violations},
                Severity.CRITICAL,
            )
        return record

    def block(self, ip: str, reason: str) -> None:
        with self._lock:
            record = self._load(ip)
            record.blocked = True
            record.violations += 5
            self._store.set(record)
        log_security_event("IP_BLOCKED", {"ip": ip, "reason": reason}, Severity.HIGH)

    def unblock(self, ip: str) -> None:
        with self._lock:
            record = self._store.get(ip)
            if record is None:
                return
            record.blocked = False
            record.violations = max(0, record.violations - 2)
            self._store.set(record)
        log_security_event("IP_UNBLOCKED", {"ip": ip}, Severity.LOW)

    def is_blocked(self, ip: str) -> bool:
        record = self._store.get(ip)
        return bool(record and record.blocked)

    def sweep(self) -> int:
        """Forget unblocked IPs that have been idle for 30 days."""

        cutoff = self._clock() - RECORD_RETENTION_SECONDS
        stale = [
            record.ip
            for record in self._store.records()
            if not record.blocked and record.last_seen < cutoff
        ]
        for ip in stale:
            self._store.delete(ip)
        if stale:
            logger.debug("Removed %d idle IP records", len(stale))
        return len(stale)

    def stats(self) -> dict[str, int]:
        records = list(self._store.records())
        return {
            "total_ips": len(records),
            "blocked_ips": sum(1 for r in records if r.blocked),
            "suspicious_ips": sum(1 for r in records if r.violations > 0),
            "total_requests": sum(r.request_count for r in records),
        }
