"""Customer conversations and message routing."""

from .models import (
    Channel,
    Conversation,
    ConversationStatus,
    DeliveryResult,
    DeliveryStatus,
    IncomingMessage,
    OutgoingMessage,
)
from .repository import (
    ConversationNotFoundError,
    ConversationRepository,
    InMemoryConversationRepository,
    PostgresConversationRepository,
)
from .service import (
    DeliveryFailedError,
    InvalidMessageError,
    InvalidTransitionError,
    MessageRouter,
)

__all__ = [
    "Channel",
    "Conversation",
    "ConversationNotFoundError",
    "ConversationRepository",
    "ConversationStatus",
    "DeliveryFailedError",
    "DeliveryResult",
    "DeliveryStatus",
    "InMemoryConversationRepository",
    "IncomingMessage",
    "InvalidMessageError",
    "InvalidTransitionError",
    "MessageRouter",
    "OutgoingMessage",
    "PostgresConversationRepository",
]
