from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from app.channels import EmailAdapter, InAppAdapter, SmsAdapter, build_adapters, get_adapter
from app.channels.email import html_to_text
from app.channels.sms import twilio_signature
from app.core.settings import MarketplaceSettings
from app.messaging.models import Channel, DeliveryStatus, OutgoingMessage
from app.notifications import InMemoryNotificationRepository


class _FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: str = ""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class _FakeSession:
    def __init__(self, outcome: Any):
        self._outcome = outcome
        self.requests: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"url": url, **kwargs})
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


_TWILIO = dict(
    twilio_account_sid="AC123",
    twilio_auth_token="twilio-token",
    twilio_phone_number="+15550001111",
)
_EMAIL = dict(email_api_url="https://mail.example.com/send", email_api_key="mail-key")


def _message(channel: Channel, recipient: str = "+15551234567") -> OutgoingMessage:
    return OutgoingMessage(
        id="msg_1",
        conversation_id="conv_1",
        sender="biz-1",
        recipient=recipient,
        content="Your tires are ready",
        channel=channel,
    )


def test_sms_delivery_posts_to_twilio():
    session = _FakeSession(_FakeResponse({"sid": "SM42"}, status_code=201))
    adapter = SmsAdapter(settings=MarketplaceSettings(brand_name="Tread Co", **_TWILIO), http=session)

    result = adapter.deliver(_message(Channel.SMS))

    assert result.ok and result.external_id == "SM42"
    request = session.requests[0]
    assert request["url"].endswith("/Accounts/AC123/Messages.json")
    assert request["data"]["Body"] == "Tread Co: Your tires are ready"
    assert request["data"]["From"] == "+15550001111"
    assert request["auth"] == ("AC123", "twilio-token")
    assert request["timeout"] == 10.0


@pytest.mark.parametrize(
    "outcome, status",
    [
        (_FakeResponse(status_code=503, text="busy"), DeliveryStatus.RETRYABLE_FAILURE),
        (_FakeResponse(status_code=429, text="slow down"), DeliveryStatus.RETRYABLE_FAILURE),
        (_FakeResponse(status_code=400, text="invalid number"), DeliveryStatus.PERMANENT_FAILURE),
        (requests.ConnectionError("refused"), DeliveryStatus.RETRYABLE_FAILURE),
        (requests.Timeout("slow"), DeliveryStatus.RETRYABLE_FAILURE),
        (requests.exceptions.InvalidURL("bad url"), DeliveryStatus.PERMANENT_FAILURE),
    ],
)
def test_failures_are_classified(outcome, status):
    adapter = SmsAdapter(settings=MarketplaceSettings(**_TWILIO), http=_FakeSession(outcome))

    result = adapter.deliver(_message(Channel.SMS))

    assert result.status is status
    assert not result.ok


def test_unconfigured_sms_is_logged_not_sent():
    session = _FakeSession(AssertionError("must not be called"))
    adapter = SmsAdapter(settings=MarketplaceSettings(), http=session)

    result = adapter.deliver(_message(Channel.SMS))

    assert result.ok
    assert result.external_id.startswith("dev_sms_")
    assert session.requests == []


def test_twilio_signature_verification():
    settings = MarketplaceSettings(**_TWILIO)
    adapter = SmsAdapter(settings=settings, http=_FakeSession(None))
    url = "https://example.com/api/webhooks/twilio"
    params = {"From": "+15551234567", "Body": "hi", "To": "+15550001111"}
    signature = twilio_signature("twilio-token", url, params)

    assert adapter.verify_signature(url, params, {"X-Twilio-Signature": signature})
    assert not adapter.verify_signature(url, params, {"X-Twilio-Signature": "forged"})
    assert not adapter.verify_signature(url, params, {})
    assert not adapter.verify_signature(url, {**params, "Body": "changed"}, {"X-Twilio-Signature": signature})


def test_twilio_signature_skipped_without_token():
    adapter = SmsAdapter(settings=MarketplaceSettings(), http=_FakeSession(None))

    assert adapter.verify_signature("https://example.com", {}, {})


def test_sms_parse_incoming():
    adapter = SmsAdapter(settings=MarketplaceSettings(), http=_FakeSession(None))

    [item] = adapter.parse_incoming(
        {"From": "+15551234567", "To": "+15550001111", "Body": "Any 17in?", "MessageSid": "SM1"}
    )

    assert item.sender == "+15551234567"
    assert item.content == "Any 17in?"
    assert item.metadata["message_sid"] == "SM1"
    with pytest.raises(ValueError):
        adapter.parse_incoming({"From": "+15551234567"})


def test_email_delivery_uses_api_key():
    session = _FakeSession(_FakeResponse({"id": "em_1"}))
    adapter = EmailAdapter(settings=MarketplaceSettings(brand_name="Tread Co", **_EMAIL), http=session)

    result = adapter.deliver(_message(Channel.EMAIL, recipient="shopper@example.com"))

    assert result.external_id == "em_1"
    request = session.requests[0]
    assert request["headers"]["Authorization"] == "Bearer mail-key"
    assert request["json"]["to"] == ["shopper@example.com"]
    assert request["json"]["subject"] == "Reply from Tread Co"
    assert "Your tires are ready" in request["json"]["html"]


def test_email_parse_incoming_falls_back_to_html():
    adapter = EmailAdapter(settings=MarketplaceSettings(), http=_FakeSession(None))

    [item] = adapter.parse_incoming(
        {
            "from": "Jane Shopper <Jane@Example.com>",
            "to": "shop@example.com",
            "subject": "Tires",
            "html": "<p>Do you have</p><p>winter tires?</p>",
        }
    )

    assert item.sender == "Jane@Example.com"
    assert item.recipient == "shop@example.com"
    assert item.content == "Do you have\nwinter tires?"
    with pytest.raises(ValueError):
        adapter.parse_incoming({"from": "a@example.com"})


def test_html_to_text_drops_scripts_and_entities():
    assert html_to_text("<script>alert(1)</script><b>Tom &amp; Co</b><br/>Hi") == "Tom & Co\nHi"


def test_in_app_delivery_creates_notification():
    store = InMemoryNotificationRepository()
    adapter = InAppAdapter(settings=MarketplaceSettings(), http=_FakeSession(None), notifications=store)

    result = adapter.deliver(_message(Channel.IN_APP, recipient="user-9"))

    notification = store.get(result.external_id)
    assert notification.recipient == "user-9"
    assert notification.metadata["conversation_id"] == "conv_1"


def test_in_app_without_store_is_permanent_failure():
    adapter = InAppAdapter(settings=MarketplaceSettings(), http=_FakeSession(None))

    assert adapter.deliver(_message(Channel.IN_APP)).status is DeliveryStatus.PERMANENT_FAILURE


class _BrokenNotificationStore:
    def add(self, payload):
        raise RuntimeError("feed table unavailable")


def test_in_app_store_error_is_permanent_failure():
    adapter = InAppAdapter(
        settings=MarketplaceSettings(), http=_FakeSession(None), notifications=_BrokenNotificationStore()
    )

    result = adapter.deliver(_message(Channel.IN_APP))

    assert result.status is DeliveryStatus.PERMANENT_FAILURE
    assert "feed table unavailable" in result.error


def test_registry_lookup_and_build():
    assert get_adapter("sms") is SmsAdapter
    with pytest.raises(KeyError):
        get_adapter("fax")

    adapters = build_adapters(
        settings=MarketplaceSettings(), notifications=InMemoryNotificationRepository()
    )
    assert set(adapters) == {Channel.SMS, Channel.EMAIL, Channel.IN_APP}
