"""Message routing between customers, conversations and delivery channels."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, List, Optional

from .models import (
    Channel,
    Conversation,
    ConversationStatus,
    DeliveryResult,
    IncomingMessage,
    OutgoingMessage,
    format_customer_identifier,
    new_message_id,
    normalize_customer_identifier,
    sanitize_message_content,
)
from .repository import ConversationNotFoundError, ConversationRepository

if TYPE_CHECKING:
    from app.channels.base import ChannelAdapter
    from app.notifications.service import NotificationService

logger = logging.getLogger(__name__)


class InvalidMessageError(ValueError):
    """Raised when a message cannot be accepted (empty, bad reference)."""


class InvalidTransitionError(ValueError):
    """Raised when a conversation status change is not allowed."""


class DeliveryFailedError(RuntimeError):
    """Raised when a reply could not be handed to its channel."""

    def __init__(self, message: OutgoingMessage, result: DeliveryResult) -> None:
        super().__init__(f"Delivery of {message.id} via {message.channel.value} failed: {result.error}")
        self.message = message
        self.result = result

    @property
    def retryable(self) -> bool:
        return self.result.is_retryable


class MessageRouter:
    """Accept customer messages and dispatch business replies.

    Each conversation has a lock so that concurrent operations on it apply in
    order; replies hold the lock across delivery and append.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        senders: Mapping[Channel, "ChannelAdapter"],
        *,
        notifications: Optional["NotificationService"] = None,
        default_business_id: str = "tgs-default",
    ) -> None:
        self.repository = repository
        self._senders = dict(senders)
        self._notifications = notifications
        self.default_business_id = default_business_id
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = self._locks[conversation_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    def handle_incoming(
        self,
        sender: str,
        content: str,
        channel: Channel,
        business_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        recipient: Optional[str] = None,
    ) -> IncomingMessage:
        """Store a customer message and notify the business.

        The message is appended whatever the conversation status; closed and
        archived conversations keep their status.
        """

        cleaned = sanitize_message_content(content)
        if not cleaned:
            raise InvalidMessageError("Message content is required")
        customer = normalize_customer_identifier(channel, sender)
        if not customer:
            raise InvalidMessageError("Customer identifier is required")
        business_id = business_id or self.default_business_id

        conversation = self.repository.get_or_create(customer, business_id, channel)
        message = IncomingMessage(
            id=new_message_id(),
            conversation_id=conversation.id,
            sender=customer,
            recipient=recipient or business_id,
            content=cleaned,
            channel=channel,
            metadata=dict(metadata or {}),
        )
        with self._lock_for(conversation.id):
            conversation = self.repository.append_message(conversation.id, message)

        logger.info(
            "Inbound %s message %s stored in conversation %s",
            channel.value,
            message.id,
            conversation.id,
        )
        self._notify_business(conversation, message)
        return message

    def _notify_business(self, conversation: Conversation, message: IncomingMessage) -> None:
        if self._notifications is None:
            return
        formatted = format_customer_identifier(message.sender, message.channel)
        try:
            self._notifications.notify_business(
                conversation.business_id,
                title="New Customer Message",
                message=f'Message from {formatted}: "{message.content}"',
                metadata={
                    "conversation_id": conversation.id,
                    "message_id": message.id,
                    "customer_identifier": message.sender,
                    "channel": message.channel.value,
                    "priority": "HIGH",
                },
            )
        except Exception:
            logger.exception("Failed to notify business about message %s", message.id)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def send_reply(
        self,
        conversation_id: str,
        content: str,
        from_user: str,
        in_reply_to: Optional[str] = None,
        *,
        business_id: Optional[str] = None,
    ) -> OutgoingMessage:
        """Deliver a business reply and append it once the channel accepted it.

        Raises:
            ConversationNotFoundError: Unknown id (or owned by another business).
            InvalidMessageError: Empty content or ``in_reply_to`` not in the
                conversation.
            DeliveryFailedError: The channel rejected the message; nothing was
                stored.
        """

        cleaned = sanitize_message_content(content)
        if not cleaned:
            raise InvalidMessageError("Reply content is required")

        self.get_conversation(conversation_id, business_id=business_id)
        with self._lock_for(conversation_id):
            conversation = self.get_conversation(conversation_id, business_id=business_id)
            if in_reply_to is not None and not any(
                m.id == in_reply_to and m.direction == "inbound" for m in conversation.messages
            ):
                raise InvalidMessageError(
                    f"Message {in_reply_to} is not a customer message of this conversation"
                )

            message = OutgoingMessage(
                id=new_message_id(),
                conversation_id=conversation.id,
                sender=conversation.business_id,
                recipient=conversation.customer_identifier,
                content=cleaned,
                channel=conversation.channel,
                in_reply_to=in_reply_to,
                metadata={"sent_by": from_user, "business_reply": True},
            )
            sender = self._senders.get(conversation.channel)
            if sender is None:
                result = DeliveryResult.permanent(
                    f"No sender configured for {conversation.channel.value}"
                )
            else:
                result = sender.deliver(message)

            if not result.ok:
                logger.warning(
                    "Reply %s to conversation %s not delivered (%s): %s",
                    message.id,
                    conversation.id,
                    result.status.value,
                    result.error,
                )
                raise DeliveryFailedError(message, result)

            if result.external_id:
                message.metadata["external_id"] = result.external_id
            self.repository.append_message(conversation.id, message)

        logger.info("Reply %s delivered via %s", message.id, message.channel.value)
        return message

    # ------------------------------------------------------------------
    # Queries and status changes
    # ------------------------------------------------------------------
    def get_conversation(
        self, conversation_id: str, *, business_id: Optional[str] = None
    ) -> Conversation:
        conversation = self.repository.get(conversation_id)
        if conversation is None or (
            business_id is not None and conversation.business_id != business_id
        ):
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def list_customer_conversations(
        self, customer_identifier: str, channel: Optional[Channel] = None
    ) -> List[Conversation]:
        if channel is not None:
            customer_identifier = normalize_customer_identifier(channel, customer_identifier)
        conversations = self.repository.list_for_customer(customer_identifier)
        if channel is not None:
            conversations = [c for c in conversations if c.channel is channel]
        return conversations

    def list_active_conversations(self, business_id: str) -> List[Conversation]:
        return self.repository.list_for_business(business_id, ConversationStatus.ACTIVE)

    def list_conversations(
        self, business_id: str, status: Optional[ConversationStatus] = None
    ) -> List[Conversation]:
        return self.repository.list_for_business(business_id, status)

    def mark_read(
        self, conversation_id: str, *, business_id: Optional[str] = None
    ) -> Conversation:
        self.get_conversation(conversation_id, business_id=business_id)
        with self._lock_for(conversation_id):
            return self.repository.mark_read(conversation_id)

    def close_conversation(
        self, conversation_id: str, *, business_id: Optional[str] = None
    ) -> Conversation:
        self.get_conversation(conversation_id, business_id=business_id)
        with self._lock_for(conversation_id):
            conversation = self.get_conversation(conversation_id, business_id=business_id)
            if conversation.status is ConversationStatus.ARCHIVED:
                raise InvalidTransitionError("Archived conversations cannot be closed")
            return self.repository.set_status(conversation_id, ConversationStatus.CLOSED)

    def archive_conversation(
        self, conversation_id: str, *, business_id: Optional[str] = None
    ) -> Conversation:
        self.get_conversation(conversation_id, business_id=business_id)
        with self._lock_for(conversation_id):
            return self.repository.set_status(conversation_id, ConversationStatus.ARCHIVED)

    def purge_archived(self, retention_days: int) -> int:
        """Drop archived conversations untouched for ``retention_days``."""

        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        removed = self.repository.purge_archived(cutoff)
        if removed:
            with self._locks_guard:
                live = {c for c in self._locks if self.repository.get(c) is not None}
                self._locks = {c: lock for c, lock in self._locks.items() if c in live}
            logger.info("Purged %d archived conversations", removed)
        return removed


__all__ = [
    "ConversationNotFoundError",
    "DeliveryFailedError",
    "InvalidMessageError",
    "InvalidTransitionError",
    "MessageRouter",
]
