"""Application service wiring.

:func:`build_container` assembles every long-lived service once at startup;
routers reach them through the :func:`get_services` dependency so tests can
swap in a fresh container by reloading ``app.main``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging

import requests
from fastapi import Request

from ..channels import build_adapters
from ..channels.base import ChannelAdapter
from ..marketplace import ListingService, YardSaleService
from ..messaging import (
    Channel,
    ConversationRepository,
    InMemoryConversationRepository,
    MessageRouter,
    PostgresConversationRepository,
)
from ..notifications import InMemoryNotificationRepository, NotificationService
from ..payments import PaymentProcessor, StripeWebhookHandler
from ..security.ip_reputation import IPReputationTracker
from ..security.rate_limiter import FixedWindowRateLimiter
from ..social import SocialMediaManager, build_publishers
from .settings import MarketplaceSettings, get_settings

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ServiceContainer:
    settings: MarketplaceSettings
    notifications: NotificationService
    conversations: ConversationRepository
    adapters: dict[Channel, ChannelAdapter]
    message_router: MessageRouter
    listings: ListingService
    yard_sales: YardSaleService
    payments: PaymentProcessor
    stripe_webhooks: StripeWebhookHandler
    social: SocialMediaManager
    rate_limiter: FixedWindowRateLimiter
    ip_reputation: IPReputationTracker


def _psycopg_dsn(url: str) -> str:
    """Turn an SQLAlchemy URL into a libpq connection string."""

    return url.replace("postgresql+psycopg://", "postgresql://", 1)


def _conversation_repository(settings: MarketplaceSettings) -> ConversationRepository:
    if settings.conversation_store == "postgres":
        if not settings.database_url:
            raise RuntimeError("CONVERSATION_STORE=postgres requires DATABASE_URL")
        logger.info("Using PostgreSQL conversation store")
        return PostgresConversationRepository(_psycopg_dsn(settings.database_url))
    return InMemoryConversationRepository()


def build_container(
    settings: MarketplaceSettings | None = None,
    *,
    http: requests.Session | None = None,
) -> ServiceContainer:
    settings = settings or get_settings()
    http = http or requests.Session()

    notification_repo = InMemoryNotificationRepository()
    adapters = build_adapters(settings=settings, notifications=notification_repo, http=http)
    notifications = NotificationService(
        notification_repo,
        mailer=adapters[Channel.EMAIL],  # type: ignore[arg-type]
        business_email=settings.business_email,
    )
    conversations = _conversation_repository(settings)
    router = MessageRouter(
        conversations,
        adapters,
        notifications=notifications,
        default_business_id=settings.default_business_id,
    )

    listings = ListingService()
    yard_sales = YardSaleService()
    payments = PaymentProcessor(
        settings, listings=listings, yard_sales=yard_sales, notifications=notifications
    )
    social = SocialMediaManager(
        settings,
        publishers=build_publishers(settings=settings, http=http),
        listings=listings,
        yard_sales=yard_sales,
    )
    return ServiceContainer(
        settings=settings,
        notifications=notifications,
        conversations=conversations,
        adapters=adapters,
        message_router=router,
        listings=listings,
        yard_sales=yard_sales,
        payments=payments,
        stripe_webhooks=StripeWebhookHandler(
            payments, webhook_secret=settings.stripe_webhook_secret
        ),
        social=social,
        rate_limiter=FixedWindowRateLimiter(storage_uri=settings.rate_limit_storage_uri),
        ip_reputation=IPReputationTracker(),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def run_maintenance(services: ServiceContainer) -> dict[str, int]:
    """Sweep expired security records and run scheduled work once."""

    summary = {
        "rate_limit_entries": services.rate_limiter.sweep(),
        "ip_records": services.ip_reputation.sweep(),
        "archived_conversations": services.message_router.purge_archived(
            services.settings.archive_retention_days
        ),
        "social_posts": services.social.publish_due_posts(),
    }
    if any(summary.values()):
        logger.info("Maintenance run: %s", summary)
    return summary


async def maintenance_loop(services: ServiceContainer) -> None:
    interval = max(services.settings.maintenance_interval_seconds, 1)
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_maintenance, services)
        except Exception:
            logger.exception("Maintenance run failed")


__all__ = [
    "ServiceContainer",
    "build_container",
    "get_services",
    "maintenance_loop",
    "run_maintenance",
]
