"""Authentication and request-screening utilities."""

from .auth import Actor, get_current_user, require_role
from .events import Severity, log_security_event
from .passwords import (
    WeakPasswordError,
    check_password_policy,
    hash_password,
    password_needs_rehash,
    verify_password,
)
from .tokens import (
    JWTSettings,
    create_access_token,
    create_refresh_token,
    get_jwt_settings,
    reset_jwt_settings_cache,
    revoke_all_refresh_tokens,
    revoke_refresh_token,
    verify_refresh_token,
)

__all__ = [
    "Actor",
    "JWTSettings",
    "Severity",
    "WeakPasswordError",
    "check_password_policy",
    "create_access_token",
    "create_refresh_token",
    "get_current_user",
    "get_jwt_settings",
    "hash_password",
    "log_security_event",
    "password_needs_rehash",
    "require_role",
    "reset_jwt_settings_cache",
    "revoke_all_refresh_tokens",
    "revoke_refresh_token",
    "verify_password",
    "verify_refresh_token",
]
