"""Runtime configuration for the marketplace services.

Values are read from the environment once and cached; tests that change the
environment call :func:`reset_settings_cache` afterwards.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

__all__ = ["MarketplaceSettings", "get_settings", "reset_settings_cache"]


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclasses.dataclass(frozen=True)
class MarketplaceSettings:
    """Business identity, provider credentials and runtime knobs."""

    brand_name: str = "T.G.'s Tires"
    default_business_id: str = "tgs-default"
    business_email: str | None = None
    business_phone: str | None = None
    app_url: str = "http://localhost:3000"

    stripe_secret_key: str | None = None
    stripe_publishable_key: str | None = None
    stripe_webhook_secret: str | None = None

    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"

    email_api_url: str | None = None
    email_api_key: str | None = None
    email_from: str = "noreply@example.com"

    social_dry_run: bool = True
    conversation_store: str = "memory"
    database_url: str | None = None

    upload_dir: str = "uploads"
    upload_max_size: int = 10 * 1024 * 1024

    http_timeout_seconds: float = 10.0
    maintenance_interval_seconds: int = 300
    archive_retention_days: int = 90
    rate_limit_storage_uri: str = "memory://"

    @property
    def twilio_configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        )

    @property
    def email_configured(self) -> bool:
        return bool(self.email_api_url and self.email_api_key)


@lru_cache(maxsize=1)
def get_settings() -> MarketplaceSettings:
    """Load settings from the environment with development defaults."""

    return MarketplaceSettings(
        brand_name=os.getenv("BRAND_NAME", "T.G.'s Tires"),
        default_business_id=os.getenv("DEFAULT_BUSINESS_ID", "tgs-default"),
        business_email=_env_optional("BUSINESS_EMAIL"),
        business_phone=_env_optional("BUSINESS_PHONE"),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        stripe_secret_key=_env_optional("STRIPE_SECRET_KEY"),
        stripe_publishable_key=_env_optional("STRIPE_PUBLISHABLE_KEY"),
        stripe_webhook_secret=_env_optional("STRIPE_WEBHOOK_SECRET"),
        twilio_account_sid=_env_optional("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=_env_optional("TWILIO_AUTH_TOKEN"),
        twilio_phone_number=_env_optional("TWILIO_PHONE_NUMBER"),
        email_api_url=_env_optional("EMAIL_API_URL"),
        email_api_key=_env_optional("EMAIL_API_KEY"),
        email_from=os.getenv("EMAIL_FROM", "noreply@example.com"),
        social_dry_run=_env_flag("SOCIAL_DRY_RUN", True),
        conversation_store=os.getenv("CONVERSATION_STORE", "memory").lower(),
        database_url=_env_optional("DATABASE_URL"),
        upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
        upload_max_size=int(os.getenv("UPLOAD_MAX_SIZE", str(10 * 1024 * 1024))),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        maintenance_interval_seconds=int(
            os.getenv("MAINTENANCE_INTERVAL_SECONDS", "300")
        ),
        archive_retention_days=int(
            os.getenv("CONVERSATION_ARCHIVE_RETENTION_DAYS", "90")
        ),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
