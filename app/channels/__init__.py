"""Channel adapter registry for customer messaging."""

from __future__ import annotations

import requests

from ..core.settings import MarketplaceSettings
from ..messaging.models import Channel
from ..notifications.repository import NotificationRepository
from .base import ChannelAdapter, InboundMessage
from .email import EmailAdapter
from .in_app import InAppAdapter
from .sms import SmsAdapter

_REGISTRY: dict[Channel, type[ChannelAdapter]] = {}


def register_adapter(adapter: type[ChannelAdapter]) -> None:
    """Register a channel adapter class in the global registry."""
    _REGISTRY[adapter.channel] = adapter


def get_adapter(channel: Channel | str) -> type[ChannelAdapter]:
    """Retrieve the adapter class for ``channel`` or raise ``KeyError``."""
    try:
        key = Channel(channel.upper() if isinstance(channel, str) else channel)
    except ValueError as exc:
        raise KeyError(f"Channel '{channel}' is not configured") from exc
    if key not in _REGISTRY:
        raise KeyError(f"Channel '{channel}' is not configured")
    return _REGISTRY[key]


def build_adapters(
    *,
    settings: MarketplaceSettings,
    notifications: NotificationRepository,
    http: requests.Session | None = None,
) -> dict[Channel, ChannelAdapter]:
    """Instantiate one adapter per registered channel sharing ``http``."""

    http = http or requests.Session()
    return {
        channel: adapter_cls(settings=settings, http=http, notifications=notifications)
        for channel, adapter_cls in _REGISTRY.items()
    }


# Pre-register built-in adapters
register_adapter(SmsAdapter)
register_adapter(EmailAdapter)
register_adapter(InAppAdapter)

__all__ = [
    "ChannelAdapter",
    "EmailAdapter",
    "InAppAdapter",
    "InboundMessage",
    "SmsAdapter",
    "build_adapters",
    "get_adapter",
    "register_adapter",
]
