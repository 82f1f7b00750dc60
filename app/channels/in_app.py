"""In-app channel: replies become notifications in the customer's feed."""

from __future__ import annotations

import logging

from ..messaging.models import Channel, DeliveryResult, OutgoingMessage
from ..notifications import schemas as notification_schemas
from .base import ChannelAdapter

logger = logging.getLogger(__name__)


class InAppAdapter(ChannelAdapter):
    channel = Channel.IN_APP

    def deliver(self, message: OutgoingMessage) -> DeliveryResult:
        if self.notifications is None:
            return DeliveryResult.permanent("Notification store unavailable")
        try:
            notification = self.notifications.add(
                notification_schemas.NotificationCreate(
                    type=notification_schemas.NotificationType.IN_APP,
                    title=f"Reply from {self.settings.brand_name}",
                    message=message.content[: notification_schemas.MAX_NOTIFICATION_MESSAGE_LENGTH],
                    recipient=message.recipient,
                    business_id=message.sender,
                    metadata={
                        "conversation_id": message.conversation_id,
                        "message_id": message.id,
                        "channel": message.channel.value,
                    },
                )
            )
        except Exception as exc:
            logger.exception("In-app reply %s could not be stored", message.id)
            return DeliveryResult.permanent(f"Notification store error: {exc}")
        return DeliveryResult.delivered(notification.id)
