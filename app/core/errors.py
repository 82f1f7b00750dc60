"""Domain errors shared across services."""

from __future__ import annotations

from app.security.events import Severity, log_security_event


class PermissionDeniedError(RuntimeError):
    """Raised when a user attempts to modify a record they do not own."""


def deny(action: str, *, user_id: str, resource: str, resource_id: str) -> PermissionDeniedError:
    """Log an unauthorized mutation attempt and return the error to raise."""

    log_security_event(
        "UNAUTHORIZED_" + action.upper(),
        {"user_id": user_id, "resource": resource, "resource_id": resource_id},
        Severity.HIGH,
    )
    return PermissionDeniedError(f"Not allowed to {action.lower()} this {resource}")
