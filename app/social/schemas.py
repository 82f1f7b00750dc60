"""Pydantic models for social-media accounts and cross-posts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.marketplace.schemas import ItemType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    FACEBOOK = "FACEBOOK"
    INSTAGRAM = "INSTAGRAM"
    TWITTER = "TWITTER"
    TIKTOK = "TIKTOK"
    SNAPCHAT = "SNAPCHAT"


class PostStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    POSTED = "POSTED"
    FAILED = "FAILED"


class SocialAccountConnect(BaseModel):
    platform: Platform
    account_id: str = Field(..., min_length=1, max_length=128)
    access_token: str = Field(..., min_length=1, max_length=2048)
    expires_at: Optional[datetime] = None


class SocialAccount(BaseModel):
    platform: Platform
    account_id: str
    access_token: str
    business_id: str
    user_id: str
    is_active: bool = True
    expires_at: Optional[datetime] = None
    connected_at: datetime = Field(default_factory=_utcnow)

    def token_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utcnow())


class SocialAccountView(BaseModel):
    """Account as shown to clients; the access token never leaves the server."""

    platform: Platform
    account_id: str
    is_active: bool
    expires_at: Optional[datetime] = None
    has_token: bool
    token_expired: bool


class CreatePostRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=64)
    item_type: ItemType
    platforms: Optional[List[Platform]] = None
    schedule_for: Optional[datetime] = None


class SocialPost(BaseModel):
    id: str
    business_id: str
    owner_id: str
    platform: Platform
    item_id: str
    item_type: ItemType
    content: str
    images: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)
    status: PostStatus
    external_post_id: Optional[str] = None
    error: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    posted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)


class PostOutcome(BaseModel):
    platform: Platform
    success: bool
    status: PostStatus
    post_id: Optional[str] = None
    error: Optional[str] = None


class CreatePostResponse(BaseModel):
    success: bool
    results: List[PostOutcome]


class PlatformStats(BaseModel):
    posted: int = 0
    failed: int = 0
    scheduled: int = 0


class SocialAnalytics(BaseModel):
    days: int
    total_posts: int
    successful_posts: int
    failed_posts: int
    scheduled_posts: int
    platform_breakdown: Dict[Platform, PlatformStats]
