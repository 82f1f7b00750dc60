"""Domain models for customer conversations."""

from __future__ import annotations

import dataclasses
import hashlib
import re
import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 2000

_BASE36 = string.digits + string.ascii_lowercase
_PHONE_SEPARATORS = re.compile(r"[\s\-\(\)\.]")


class Channel(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    IN_APP = "IN_APP"


class ConversationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncomingMessage(BaseModel):
    """Message received from a customer."""

    direction: Literal["inbound"] = "inbound"
    id: str
    conversation_id: str
    sender: str
    recipient: str
    content: str
    channel: Channel
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OutgoingMessage(BaseModel):
    """Reply sent by the business."""

    direction: Literal["outbound"] = "outbound"
    id: str
    conversation_id: str
    sender: str
    recipient: str
    content: str
    channel: Channel
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    in_reply_to: Optional[str] = None


Message = Annotated[Union[IncomingMessage, OutgoingMessage], Field(discriminator="direction")]


class Conversation(BaseModel):
    id: str
    business_id: str
    channel: Channel
    customer_identifier: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    last_message_at: datetime = Field(default_factory=_utcnow)

    @property
    def unread_count(self) -> int:
        return sum(
            1
            for message in self.messages
            if message.direction == "inbound" and not message.metadata.get("read")
        )


class DeliveryStatus(str, Enum):
    DELIVERED = "DELIVERED"
    RETRYABLE_FAILURE = "RETRYABLE_FAILURE"
    PERMANENT_FAILURE = "PERMANENT_FAILURE"


@dataclasses.dataclass(frozen=True)
class DeliveryResult:
    """Outcome of handing a message to a transport."""

    status: DeliveryStatus
    external_id: str | None = None
    error: str | None = None

    @classmethod
    def delivered(cls, external_id: str | None = None) -> "DeliveryResult":
        return cls(DeliveryStatus.DELIVERED, external_id=external_id)

    @classmethod
    def retryable(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryStatus.RETRYABLE_FAILURE, error=error)

    @classmethod
    def permanent(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryStatus.PERMANENT_FAILURE, error=error)

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def is_retryable(self) -> bool:
        return self.status is DeliveryStatus.RETRYABLE_FAILURE


def normalize_customer_identifier(channel: Channel, identifier: str) -> str:
    """Canonical form of ``identifier`` so one customer maps to one conversation.

    E-mail addresses are lowercased; phone numbers lose their separators.
    """

    value = identifier.strip()
    if channel is Channel.EMAIL:
        return value.lower()
    if channel is Channel.SMS:
        return _PHONE_SEPARATORS.sub("", value)
    return value


def conversation_id_for(channel: Channel, customer_identifier: str, business_id: str) -> str:
    """Derive the stable conversation id of a (channel, customer, business) triple."""

    key = "\x1f".join((channel.value, customer_identifier, business_id))
    return "conv_" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def new_message_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"msg_{int(time.time() * 1000)}_{suffix}"


def sanitize_message_content(content: str | None) -> str:
    """Remove angle brackets, trim and cap at :data:`MAX_MESSAGE_LENGTH`."""

    if not content:
        return ""
    return content.replace("<", "").replace(">", "").strip()[:MAX_MESSAGE_LENGTH]


def format_customer_identifier(identifier: str, channel: Channel) -> str:
    """Human-friendly rendering used in notifications."""

    if channel is Channel.SMS:
        digits = re.sub(r"\D", "", identifier)
        if len(digits) == 11 and digits.startswith("1"):
            digits = digits[1:]
        if len(digits) == 10:
            return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
        return identifier
    if channel is Channel.IN_APP:
        return f"User {identifier}"
    return identifier


__all__ = [
    "Channel",
    "Conversation",
    "ConversationStatus",
    "DeliveryResult",
    "DeliveryStatus",
    "IncomingMessage",
    "MAX_MESSAGE_LENGTH",
    "Message",
    "OutgoingMessage",
    "conversation_id_for",
    "format_customer_identifier",
    "new_message_id",
    "normalize_customer_identifier",
    "sanitize_message_content",
]
