"""Social-media account management and marketplace cross-posting."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union
from uuid import uuid4

from app.core.errors import deny
from app.core.settings import MarketplaceSettings
from app.marketplace.schemas import ItemType, TireListing, YardSaleItem
from app.marketplace.service import (
    ListingNotFoundError,
    ListingService,
    YardSaleItemNotFoundError,
    YardSaleService,
)
from app.security.auth import Actor
from app.security.events import Severity, log_security_event

from . import schemas
from .content import PostContent, tire_post, yard_sale_post
from .publishers import PublishResult, SocialPublisher
from .repository import InMemorySocialRepository, SocialRepository

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 10


class InvalidSocialAccountError(ValueError):
    """Raised when an account or post request cannot be accepted."""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def valid_access_token(platform: schemas.Platform, token: str) -> bool:
    """Return ``True`` if ``token`` has the shape issued by ``platform``."""

    if not token or len(token) < MIN_TOKEN_LENGTH:
        return False
    if platform in (schemas.Platform.FACEBOOK, schemas.Platform.INSTAGRAM):
        return token.startswith("EAA") or "|" in token
    if platform is schemas.Platform.TWITTER:
        return len(token) >= 50
    if platform is schemas.Platform.TIKTOK:
        return token.startswith("tt_")
    if platform is schemas.Platform.SNAPCHAT:
        return len(token) >= 32
    return len(token) >= 20


class SocialMediaManager:
    """Connect accounts, generate posts for listings and publish them."""

    def __init__(
        self,
        settings: MarketplaceSettings,
        *,
        publishers: Mapping[schemas.Platform, SocialPublisher],
        listings: ListingService,
        yard_sales: YardSaleService,
        repository: Optional[SocialRepository] = None,
    ) -> None:
        self.settings = settings
        self.publishers = dict(publishers)
        self.listings = listings
        self.yard_sales = yard_sales
        self.repository = repository or InMemorySocialRepository()

    # ------------------------------------------------------------------
    # Accounts

    def connect_account(
        self, actor: Actor, payload: schemas.SocialAccountConnect
    ) -> schemas.SocialAccountView:
        if not valid_access_token(payload.platform, payload.access_token):
            log_security_event(
                "INVALID_SOCIAL_TOKEN",
                {"platform": payload.platform.value, "user_id": actor.user_id},
                Severity.MEDIUM,
            )
            raise InvalidSocialAccountError("Invalid access token format")
        expires_at = _as_utc(payload.expires_at) if payload.expires_at else None
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            raise InvalidSocialAccountError("Access token has already expired")

        account = self.repository.save_account(
            schemas.SocialAccount(
                platform=payload.platform,
                account_id=payload.account_id,
                access_token=payload.access_token,
                business_id=actor.business_id,
                user_id=actor.user_id,
                expires_at=expires_at,
            )
        )
        log_security_event(
            "SOCIAL_ACCOUNT_ADDED",
            {"platform": payload.platform.value, "user_id": actor.user_id},
            Severity.LOW,
        )
        return self._view(account)

    def disconnect_account(self, actor: Actor, platform: schemas.Platform) -> bool:
        removed = self.repository.delete_account(actor.user_id, platform)
        if removed:
            log_security_event(
                "SOCIAL_ACCOUNT_REMOVED",
                {"platform": platform.value, "user_id": actor.user_id},
                Severity.LOW,
            )
        return removed

    def list_accounts(self, actor: Actor) -> List[schemas.SocialAccountView]:
        return [self._view(a) for a in self.repository.list_accounts(actor.user_id)]

    @staticmethod
    def _view(account: schemas.SocialAccount) -> schemas.SocialAccountView:
        return schemas.SocialAccountView(
            platform=account.platform,
            account_id=account.account_id,
            is_active=account.is_active,
            expires_at=account.expires_at,
            has_token=bool(account.access_token),
            token_expired=account.token_expired(),
        )

    # ------------------------------------------------------------------
    # Posting

    def _load_item(
        self, actor: Actor, item_type: ItemType, item_id: str
    ) -> Union[TireListing, YardSaleItem]:
        item: Union[TireListing, YardSaleItem, None]
        if item_type is ItemType.TIRE:
            item = self.listings.find(item_id)
            if item is None or item.business_id != actor.business_id:
                raise ListingNotFoundError(f"Listing {item_id} not found")
        else:
            item = self.yard_sales.find(item_id)
            if item is None or item.business_id != actor.business_id:
                raise YardSaleItemNotFoundError(f"Yard-sale item {item_id} not found")
        if item.owner_id != actor.user_id:
            raise deny("post", user_id=actor.user_id, resource=item_type.value.lower(), resource_id=item_id)
        return item

    def generate_content(self, item: Union[TireListing, YardSaleItem]) -> PostContent:
        if isinstance(item, TireListing):
            return tire_post(item, self.settings.brand_name)
        return yard_sale_post(item, self.settings.brand_name)

    def create_post(
        self,
        actor: Actor,
        request: schemas.CreatePostRequest,
        *,
        now: Optional[datetime] = None,
    ) -> schemas.CreatePostResponse:
        """Publish (or schedule) an item to the caller's connected accounts."""

        now = now or datetime.now(timezone.utc)
        schedule_for = _as_utc(request.schedule_for) if request.schedule_for else None
        if schedule_for is not None and schedule_for <= now:
            raise InvalidSocialAccountError("schedule_for must be in the future")

        item = self._load_item(actor, request.item_type, request.item_id)
        targets = set(request.platforms or schemas.Platform)
        accounts = [
            account
            for account in self.repository.list_accounts(actor.user_id)
            if account.is_active and account.platform in targets
        ]
        if not accounts:
            raise InvalidSocialAccountError("No connected accounts for the requested platforms")

        content = self.generate_content(item)
        outcomes: List[schemas.PostOutcome] = []
        for account in accounts:
            post = schemas.SocialPost(
                id=f"post_{uuid4().hex[:20]}",
                business_id=actor.business_id,
                owner_id=actor.user_id,
                platform=account.platform,
                item_id=item.id,
                item_type=request.item_type,
                content=content.text,
                images=content.images,
                hashtags=content.hashtags,
                status=schemas.PostStatus.SCHEDULED,
                scheduled_for=schedule_for,
                created_at=now,
            )
            if schedule_for is None:
                post = self._apply(post, self._publish(account, content, now), now)
            self.repository.add_post(post)
            outcomes.append(
                schemas.PostOutcome(
                    platform=post.platform,
                    success=post.status is not schemas.PostStatus.FAILED,
                    status=post.status,
                    post_id=post.external_post_id,
                    error=post.error,
                )
            )

        success_count = sum(1 for o in outcomes if o.success)
        log_security_event(
            "SOCIAL_MEDIA_POST_CREATED",
            {
                "user_id": actor.user_id,
                "item_id": item.id,
                "item_type": request.item_type.value,
                "platforms": [o.platform.value for o in outcomes],
                "success_count": success_count,
                "total_count": len(outcomes),
            },
            Severity.LOW,
        )
        return schemas.CreatePostResponse(success=success_count > 0, results=outcomes)

    def _publish(
        self, account: schemas.SocialAccount, content: PostContent, now: datetime
    ) -> PublishResult:
        if account.token_expired(now):
            return PublishResult.failed("Access token expired")
        publisher = self.publishers.get(account.platform)
        if publisher is None:
            return PublishResult.failed(f"No publisher for {account.platform.value}")
        return publisher.publish(account, content)

    @staticmethod
    def _apply(
        post: schemas.SocialPost, result: PublishResult, now: datetime
    ) -> schemas.SocialPost:
        if result.success:
            return post.model_copy(
                update={
                    "status": schemas.PostStatus.POSTED,
                    "external_post_id": result.post_id,
                    "posted_at": now,
                    "error": None,
                }
            )
        return post.model_copy(update={"status": schemas.PostStatus.FAILED, "error": result.error})

    def publish_due_posts(self, now: Optional[datetime] = None) -> int:
        """Publish scheduled posts whose time has come; returns how many were handled."""

        now = now or datetime.now(timezone.utc)
        handled = 0
        for post in self.repository.due_posts(now):
            account = self.repository.get_account(post.owner_id, post.platform)
            if account is None or not account.is_active:
                result = PublishResult.failed("Account is no longer connected")
            else:
                content = PostContent(
                    text=post.content,
                    images=post.images,
                    hashtags=post.hashtags,
                )
                result = self._publish(account, content, now)
            updated = self._apply(post, result, now)
            self.repository.update_post(
                post.id,
                {
                    "status": updated.status,
                    "external_post_id": updated.external_post_id,
                    "posted_at": updated.posted_at,
                    "error": updated.error,
                },
            )
            handled += 1
        if handled:
            logger.info("Published %d scheduled social posts", handled)
        return handled

    # ------------------------------------------------------------------
    # Analytics

    def list_posts(self, actor: Actor, *, days: Optional[int] = None) -> List[schemas.SocialPost]:
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        return self.repository.list_posts(actor.user_id, since=since)

    def analytics(self, actor: Actor, days: int = 30) -> schemas.SocialAnalytics:
        posts = self.list_posts(actor, days=days)
        breakdown = {platform: schemas.PlatformStats() for platform in schemas.Platform}
        for post in posts:
            stats = breakdown[post.platform]
            if post.status is schemas.PostStatus.POSTED:
                stats.posted += 1
            elif post.status is schemas.PostStatus.FAILED:
                stats.failed += 1
            else:
                stats.scheduled += 1
        return schemas.SocialAnalytics(
            days=days,
            total_posts=len(posts),
            successful_posts=sum(s.posted for s in breakdown.values()),
            failed_posts=sum(s.failed for s in breakdown.values()),
            scheduled_posts=sum(s.scheduled for s in breakdown.values()),
            platform_breakdown=breakdown,
        )



__all__ = [
    "InvalidSocialAccountError",
    "SocialMediaManager",
    "valid_access_token",
]
