from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from app.core.errors import PermissionDeniedError
from app.core.settings import MarketplaceSettings
from app.marketplace import ListingService, YardSaleService
from app.marketplace import schemas as marketplace
from app.security.auth import Actor
from app.social import InvalidSocialAccountError, Platform, PostStatus, SocialMediaManager, build_publishers
from app.social import schemas
from app.social.content import PostContent, tire_post
from app.social.manager import valid_access_token
from app.social.publishers import TWEET_LIMIT, TwitterPublisher

OWNER = Actor(business_id="biz-1", user_id="owner", role="operator", name="Owner", email="o@example.com")
COWORKER = Actor(business_id="biz-1", user_id="coworker", role="operator", name="Co", email="c@example.com")

TOKENS = {
    Platform.FACEBOOK: "EAAB" + "x" * 40,
    Platform.INSTAGRAM: "app|" + "y" * 40,
    Platform.TWITTER: "t" * 60,
    Platform.TIKTOK: "tt_" + "z" * 30,
    Platform.SNAPCHAT: "s" * 40,
}


class _FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self) -> Any:
        return self._payload


class _FakeSession:
    def __init__(self, *responses: _FakeResponse) -> None:
        self._responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"url": url, **kwargs})
        return self._responses.pop(0)


def _manager(dry_run: bool = True, http=None) -> SocialMediaManager:
    settings = MarketplaceSettings(brand_name="Tread Co", social_dry_run=dry_run)
    return SocialMediaManager(
        settings,
        publishers=build_publishers(settings=settings, http=http),
        listings=ListingService(),
        yard_sales=YardSaleService(),
    )


def _connect(manager: SocialMediaManager, platform: Platform, actor: Actor = OWNER, **extra):
    return manager.connect_account(
        actor,
        schemas.SocialAccountConnect(
            platform=platform, account_id=f"{platform.value.lower()}-page", access_token=TOKENS[platform], **extra
        ),
    )


def _listing(manager: SocialMediaManager, **overrides):
    fields = dict(title="Michelin Pilot Sport 4", brand="Michelin", size="225/45R17", price=450, tread_depth=8)
    fields.update(overrides)
    return manager.listings.create(OWNER, marketplace.TireListingCreate(**fields))


@pytest.mark.parametrize("platform, token", TOKENS.items())
def test_valid_tokens_per_platform(platform, token):
    assert valid_access_token(platform, token)


@pytest.mark.parametrize(
    "platform, token",
    [
        (Platform.FACEBOOK, "not-a-graph-token-at-all"),
        (Platform.TWITTER, "short-bearer-token"),
        (Platform.TIKTOK, "x" * 40),
        (Platform.SNAPCHAT, "s" * 20),
        (Platform.FACEBOOK, "EAA"),
    ],
)
def test_invalid_tokens_per_platform(platform, token):
    assert not valid_access_token(platform, token)


def test_connect_hides_token_and_rejects_bad_input():
    manager = _manager()

    view = _connect(manager, Platform.FACEBOOK)

    assert view.has_token is True
    assert "access_token" not in view.model_dump()
    with pytest.raises(InvalidSocialAccountError):
        manager.connect_account(
            OWNER,
            schemas.SocialAccountConnect(platform=Platform.TWITTER, account_id="a", access_token="short"),
        )
    with pytest.raises(InvalidSocialAccountError):
        _connect(manager, Platform.TWITTER, expires_at=datetime.now(timezone.utc) - timedelta(days=1))


def test_tire_post_content():
    manager = _manager()
    listing = _listing(manager, rim_service_available=True, rim_service_price=80)

    content = tire_post(listing, "Tread Co")

    assert content.text.startswith("Quality Used Tire Available! Michelin Pilot Sport 4")
    assert "Size: 225/45R17" in content.text
    assert 'Tread Depth: 8/32"' in content.text
    assert "rim mounting service available for $80.00" in content.text
    assert "#TreadCo" in content.hashtags and "#Michelin" in content.hashtags


def test_dry_run_posts_to_connected_accounts_only():
    manager = _manager()
    listing = _listing(manager, images=["https://cdn.example.com/tire.jpg"])
    _connect(manager, Platform.FACEBOOK)
    _connect(manager, Platform.INSTAGRAM)

    response = manager.create_post(
        OWNER,
        schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE", platforms=[Platform.FACEBOOK, Platform.TWITTER]),
    )

    assert response.success
    assert [r.platform for r in response.results] == [Platform.FACEBOOK]
    assert response.results[0].status is PostStatus.POSTED
    assert response.results[0].post_id.startswith("facebook_")


def test_media_required_platforms_fail_without_images():
    manager = _manager()
    listing = _listing(manager)
    _connect(manager, Platform.INSTAGRAM)
    _connect(manager, Platform.FACEBOOK)

    response = manager.create_post(OWNER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))

    outcomes = {r.platform: r for r in response.results}
    assert outcomes[Platform.FACEBOOK].success
    assert not outcomes[Platform.INSTAGRAM].success
    assert outcomes[Platform.INSTAGRAM].error == "INSTAGRAM requires at least one image"
    assert response.success


def test_only_owner_can_post_item():
    manager = _manager()
    listing = _listing(manager)
    _connect(manager, Platform.FACEBOOK, actor=COWORKER)

    with pytest.raises(PermissionDeniedError):
        manager.create_post(COWORKER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))


def test_post_without_accounts_is_rejected():
    manager = _manager()
    listing = _listing(manager)

    with pytest.raises(InvalidSocialAccountError):
        manager.create_post(OWNER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))


def test_scheduled_posts_publish_when_due():
    manager = _manager()
    listing = _listing(manager)
    _connect(manager, Platform.FACEBOOK)
    now = datetime.now(timezone.utc)

    response = manager.create_post(
        OWNER,
        schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE", schedule_for=now + timedelta(hours=1)),
        now=now,
    )
    assert response.results[0].status is PostStatus.SCHEDULED

    assert manager.publish_due_posts(now) == 0
    assert manager.publish_due_posts(now + timedelta(hours=2)) == 1
    assert manager.list_posts(OWNER)[0].status is PostStatus.POSTED

    analytics = manager.analytics(OWNER)
    assert analytics.total_posts == 1
    assert analytics.successful_posts == 1
    assert analytics.platform_breakdown[Platform.FACEBOOK].posted == 1


def test_schedule_in_past_is_rejected():
    manager = _manager()
    listing = _listing(manager)
    _connect(manager, Platform.FACEBOOK)

    with pytest.raises(InvalidSocialAccountError):
        manager.create_post(
            OWNER,
            schemas.CreatePostRequest(
                item_id=listing.id, item_type="TIRE", schedule_for=datetime.now(timezone.utc) - timedelta(minutes=1)
            ),
        )


def test_live_twitter_post_is_truncated():
    session = _FakeSession(_FakeResponse({"data": {"id": "1789"}}))
    manager = _manager(dry_run=False, http=session)
    listing = _listing(manager)
    _connect(manager, Platform.TWITTER)

    response = manager.create_post(OWNER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))

    assert response.results[0].post_id == "1789"
    sent = session.requests[0]
    assert sent["url"].endswith("/tweets")
    assert len(sent["json"]["text"]) <= TWEET_LIMIT
    assert sent["headers"]["Authorization"] == f"Bearer {TOKENS[Platform.TWITTER]}"


def test_live_instagram_uses_media_container():
    session = _FakeSession(_FakeResponse({"id": "container-1"}), _FakeResponse({"id": "media-9"}))
    manager = _manager(dry_run=False, http=session)
    listing = _listing(manager, images=["https://cdn.example.com/tire.jpg"])
    _connect(manager, Platform.INSTAGRAM)

    response = manager.create_post(OWNER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))

    assert response.results[0].post_id == "media-9"
    assert session.requests[1]["data"]["creation_id"] == "container-1"


def test_live_rejection_marks_post_failed():
    session = _FakeSession(_FakeResponse({"error": "bad token"}, status_code=401))
    manager = _manager(dry_run=False, http=session)
    listing = _listing(manager)
    _connect(manager, Platform.FACEBOOK)

    response = manager.create_post(OWNER, schemas.CreatePostRequest(item_id=listing.id, item_type="TIRE"))

    assert response.success is False
    assert response.results[0].error.startswith("HTTP 401")


def test_twitter_render_limit():
    publisher = TwitterPublisher(settings=MarketplaceSettings())

    rendered = publisher.render(PostContent(text="a" * 300, images=[], hashtags=["#x"]))

    assert len(rendered) == TWEET_LIMIT
    assert rendered.endswith("...")


def test_social_api_flow(client, business_auth):
    headers = business_auth.header("operator")
    services = client.app.state.services
    listing = services.listings.create(
        business_auth.actor("operator"),
        marketplace.TireListingCreate(title="Set of 4", brand="Kumho", size="195/65R15", price=200),
    )

    connected = client.post(
        "/api/social/accounts",
        json={"platform": "FACEBOOK", "account_id": "page-1", "access_token": TOKENS[Platform.FACEBOOK]},
        headers=headers,
    )
    assert connected.status_code == 201
    assert client.get("/api/social/accounts", headers=headers).json()[0]["platform"] == "FACEBOOK"

    posted = client.post(
        "/api/social/posts", json={"item_id": listing.id, "item_type": "TIRE"}, headers=headers
    )
    assert posted.status_code == 201
    assert posted.json()["success"] is True

    assert client.get("/api/social/analytics", headers=headers).json()["total_posts"] == 1
    assert client.delete("/api/social/accounts/FACEBOOK", headers=headers).status_code == 204
    assert client.delete("/api/social/accounts/FACEBOOK", headers=headers).status_code == 404
    assert client.get("/api/social/accounts", headers=business_auth.header("viewer")).status_code == 403
