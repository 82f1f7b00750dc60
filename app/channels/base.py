"""Base abstractions for customer messaging channels."""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Callable

import requests

from ..core.settings import MarketplaceSettings
from ..messaging.models import Channel, DeliveryResult, OutgoingMessage
from ..notifications.repository import NotificationRepository

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclasses.dataclass(frozen=True)
class InboundMessage:
    """Customer message extracted from a provider webhook."""

    sender: str
    recipient: str
    content: str
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)


class ChannelAdapter(ABC):
    """Delivery strategy (and webhook parser) for one :class:`Channel`."""

    channel: Channel

    def __init__(
        self,
        *,
        settings: MarketplaceSettings,
        http: requests.Session | None = None,
        notifications: NotificationRepository | None = None,
    ) -> None:
        self.settings = settings
        self.http = http or requests.Session()
        self.notifications = notifications

    @abstractmethod
    def deliver(self, message: OutgoingMessage) -> DeliveryResult:
        """Hand ``message`` to the transport and report the outcome."""

    def verify_signature(
        self, url: str, params: Mapping[str, Any], headers: Mapping[str, str]
    ) -> bool:
        """Validate authenticity of a webhook; adapters override as needed."""

        return True

    def parse_incoming(self, payload: Mapping[str, Any]) -> Iterable[InboundMessage]:
        raise NotImplementedError(f"{self.channel.value} does not accept webhooks")

    def _post(
        self,
        url: str,
        *,
        extract_id: Callable[[Any], str | None] = lambda body: None,
        **kwargs: Any,
    ) -> DeliveryResult:
        """POST to a provider API and classify the response."""

        kwargs.setdefault("timeout", self.settings.http_timeout_seconds)
        try:
            response = self.http.post(url, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("%s transport unreachable: %s", self.channel.value, exc)
            return DeliveryResult.retryable(f"Transport unreachable: {exc}")
        except requests.RequestException as exc:
            logger.error("%s request failed: %s", self.channel.value, exc)
            return DeliveryResult.permanent(str(exc))

        if response.status_code >= 400:
            error = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning("%s delivery rejected: %s", self.channel.value, error)
            if response.status_code in _RETRYABLE_STATUS_CODES:
                return DeliveryResult.retryable(error)
            return DeliveryResult.permanent(error)

        try:
            body = response.json()
        except ValueError:
            body = None
        return DeliveryResult.delivered(extract_id(body))
