"""Per-platform publishers for social cross-posts."""

from __future__ import annotations

import dataclasses
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from uuid import uuid4

import requests

from app.core.settings import MarketplaceSettings

from .content import PostContent
from .schemas import Platform, SocialAccount

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com/v19.0"
TWITTER_API_BASE = "https://api.twitter.com/2"
TIKTOK_API_BASE = "https://open.tiktokapis.com/v2"
SNAPCHAT_API_BASE = "https://adsapi.snapchat.com/v1"

TWEET_LIMIT = 250


@dataclasses.dataclass(frozen=True)
class PublishResult:
    success: bool
    post_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def posted(cls, post_id: Optional[str]) -> "PublishResult":
        return cls(True, post_id=post_id)

    @classmethod
    def failed(cls, error: str) -> "PublishResult":
        return cls(False, error=error)


class SocialPublisher(ABC):
    """Publish composed content to one :class:`Platform`."""

    platform: Platform
    requires_media = False

    def __init__(
        self, *, settings: MarketplaceSettings, http: Optional[requests.Session] = None
    ) -> None:
        self.settings = settings
        self.http = http or requests.Session()

    def publish(self, account: SocialAccount, content: PostContent) -> PublishResult:
        if self.requires_media and not content.images:
            logger.warning("%s requires at least one image", self.platform.value)
            return PublishResult.failed(f"{self.platform.value} requires at least one image")
        if self.settings.social_dry_run:
            post_id = f"{self.platform.value.lower()}_{int(time.time() * 1000)}_{uuid4().hex[:6]}"
            logger.info(
                "Dry-run post to %s account %s: %s",
                self.platform.value,
                account.account_id,
                self.render(content)[:100],
            )
            return PublishResult.posted(post_id)
        return self.send(account, content)

    def render(self, content: PostContent) -> str:
        return content.compose()

    @abstractmethod
    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        """Call the platform API."""

    def _post(
        self,
        url: str,
        *,
        extract_id: Callable[[Any], Optional[str]],
        **kwargs: Any,
    ) -> PublishResult:
        kwargs.setdefault("timeout", self.settings.http_timeout_seconds)
        try:
            response = self.http.post(url, **kwargs)
        except requests.RequestException as exc:
            logger.warning("%s request failed: %s", self.platform.value, exc)
            return PublishResult.failed(str(exc))
        if response.status_code >= 400:
            error = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning("%s rejected post: %s", self.platform.value, error)
            return PublishResult.failed(error)
        try:
            body = response.json()
        except ValueError:
            body = None
        return PublishResult.posted(extract_id(body))


def _field(*path: str) -> Callable[[Any], Optional[str]]:
    def extract(body: Any) -> Optional[str]:
        for key in path:
            if not isinstance(body, dict):
                return None
            body = body.get(key)
        return str(body) if body is not None else None

    return extract


class FacebookPublisher(SocialPublisher):
    platform = Platform.FACEBOOK

    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        data = {"message": self.render(content), "access_token": account.access_token}
        if content.images:
            data["link"] = content.images[0]
        return self._post(
            f"{GRAPH_API_BASE}/{account.account_id}/feed", data=data, extract_id=_field("id")
        )


class InstagramPublisher(SocialPublisher):
    platform = Platform.INSTAGRAM
    requires_media = True

    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        container = self._post(
            f"{GRAPH_API_BASE}/{account.account_id}/media",
            data={
                "image_url": content.images[0],
                "caption": self.render(content),
                "access_token": account.access_token,
            },
            extract_id=_field("id"),
        )
        if not container.success:
            return container
        if not container.post_id:
            return PublishResult.failed("Instagram returned no media container id")
        return self._post(
            f"{GRAPH_API_BASE}/{account.account_id}/media_publish",
            data={"creation_id": container.post_id, "access_token": account.access_token},
            extract_id=_field("id"),
        )


class TwitterPublisher(SocialPublisher):
    platform = Platform.TWITTER

    def render(self, content: PostContent) -> str:
        text = content.compose()
        if len(text) > TWEET_LIMIT:
            text = text[: TWEET_LIMIT - 3] + "..."
        return text

    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        return self._post(
            f"{TWITTER_API_BASE}/tweets",
            json={"text": self.render(content)},
            headers={"Authorization": f"Bearer {account.access_token}"},
            extract_id=_field("data", "id"),
        )


class TikTokPublisher(SocialPublisher):
    platform = Platform.TIKTOK
    requires_media = True

    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        return self._post(
            f"{TIKTOK_API_BASE}/post/publish/content/init/",
            json={
                "post_info": {"title": content.text[:90], "description": self.render(content)},
                "source_info": {
                    "source": "PULL_FROM_URL",
                    "photo_images": content.images,
                    "photo_cover_index": 0,
                },
                "post_mode": "DIRECT_POST",
                "media_type": "PHOTO",
            },
            headers={"Authorization": f"Bearer {account.access_token}"},
            extract_id=_field("data", "publish_id"),
        )


class SnapchatPublisher(SocialPublisher):
    platform = Platform.SNAPCHAT

    def send(self, account: SocialAccount, content: PostContent) -> PublishResult:
        return self._post(
            f"{SNAPCHAT_API_BASE}/adaccounts/{account.account_id}/creatives",
            json={
                "creatives": [
                    {
                        "name": content.text[:34],
                        "headline": content.text[:34],
                        "brand_name": self.settings.brand_name[:25],
                        "type": "SNAP_AD",
                        "top_snap_media_urls": content.images,
                    }
                ]
            },
            headers={"Authorization": f"Bearer {account.access_token}"},
            extract_id=_field("request_id"),
        )


_REGISTRY: dict[Platform, type[SocialPublisher]] = {}


def register_publisher(publisher: type[SocialPublisher]) -> None:
    _REGISTRY[publisher.platform] = publisher


def build_publishers(
    *, settings: MarketplaceSettings, http: Optional[requests.Session] = None
) -> dict[Platform, SocialPublisher]:
    http = http or requests.Session()
    return {platform: cls(settings=settings, http=http) for platform, cls in _REGISTRY.items()}


register_publisher(FacebookPublisher)
register_publisher(InstagramPublisher)
register_publisher(TwitterPublisher)
register_publisher(TikTokPublisher)
register_publisher(SnapchatPublisher)
