"""Conversation storage: repository protocol, in-memory and PostgreSQL stores."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from app.core.db import apply_business_settings

from .models import (
    Channel,
    Conversation,
    ConversationStatus,
    IncomingMessage,
    Message,
    OutgoingMessage,
    conversation_id_for,
)


class ConversationNotFoundError(RuntimeError):
    """Raised when a conversation id does not resolve."""


class ConversationRepository(Protocol):
    """Persistence for conversations and their append-only message history."""

    def get(self, conversation_id: str) -> Optional[Conversation]: ...

    def get_or_create(
        self, customer_identifier: str, business_id: str, channel: Channel
    ) -> Conversation: ...

    def append_message(self, conversation_id: str, message: Message) -> Conversation: ...

    def set_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> Conversation: ...

    def mark_read(self, conversation_id: str) -> Conversation: ...

    def list_for_customer(self, customer_identifier: str) -> List[Conversation]: ...

    def list_for_business(
        self, business_id: str, status: Optional[ConversationStatus] = None
    ) -> List[Conversation]: ...

    def purge_archived(self, before: datetime) -> int: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _by_recent_activity(conversations: List[Conversation]) -> List[Conversation]:
    return sorted(conversations, key=lambda c: c.last_message_at, reverse=True)


class InMemoryConversationRepository:
    """Process-local store; returned conversations are copies."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._lock = threading.RLock()

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.model_copy(deep=True) if conversation else None

    def get_or_create(
        self, customer_identifier: str, business_id: str, channel: Channel
    ) -> Conversation:
        conversation_id = conversation_id_for(channel, customer_identifier, business_id)
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                now = _utcnow()
                conversation = Conversation(
                    id=conversation_id,
                    business_id=business_id,
                    channel=channel,
                    customer_identifier=customer_identifier,
                    created_at=now,
                    updated_at=now,
                    last_message_at=now,
                )
                self._conversations[conversation_id] = conversation
            return conversation.model_copy(deep=True)

    def append_message(self, conversation_id: str, message: Message) -> Conversation:
        with self._lock:
            conversation = self._require(conversation_id)
            conversation.messages.append(message.model_copy(deep=True))
            conversation.last_message_at = message.timestamp
            conversation.updated_at = _utcnow()
            return conversation.model_copy(deep=True)

    def set_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> Conversation:
        with self._lock:
            conversation = self._require(conversation_id)
            if conversation.status is not status:
                conversation.status = status
                conversation.updated_at = _utcnow()
            return conversation.model_copy(deep=True)

    def mark_read(self, conversation_id: str) -> Conversation:
        with self._lock:
            conversation = self._require(conversation_id)
            for message in conversation.messages:
                if message.direction == "inbound":
                    message.metadata["read"] = True
            return conversation.model_copy(deep=True)

    def list_for_customer(self, customer_identifier: str) -> List[Conversation]:
        with self._lock:
            matches = [
                c.model_copy(deep=True)
                for c in self._conversations.values()
                if c.customer_identifier == customer_identifier
            ]
        return _by_recent_activity(matches)

    def list_for_business(
        self, business_id: str, status: Optional[ConversationStatus] = None
    ) -> List[Conversation]:
        with self._lock:
            matches = [
                c.model_copy(deep=True)
                for c in self._conversations.values()
                if c.business_id == business_id and (status is None or c.status is status)
            ]
        return _by_recent_activity(matches)

    def purge_archived(self, before: datetime) -> int:
        with self._lock:
            stale = [
                conversation_id
                for conversation_id, c in self._conversations.items()
                if c.status is ConversationStatus.ARCHIVED and c.updated_at < before
            ]
            for conversation_id in stale:
                del self._conversations[conversation_id]
        return len(stale)


_CONVERSATION_COLUMNS = (
    "id, business_id, channel, customer_identifier, status, "
    "created_at, updated_at, last_message_at"
)
_MESSAGE_COLUMNS = (
    "id, conversation_id, direction, sender, recipient, content, channel, "
    "metadata, in_reply_to, created_at"
)


class PostgresConversationRepository:
    """PostgreSQL-backed store (tables from migration 002).

    A connection is opened per operation; every statement runs with
    ``app.business_id`` set so row-level policies can apply.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def _connect(self, business_id: str | None = None) -> psycopg.Connection:
        conn = psycopg.connect(self._dsn, row_factory=dict_row)
        if business_id is not None:
            apply_business_settings(conn, business_id)
        return conn

    @staticmethod
    def _to_message(row: Dict[str, Any]) -> Message:
        fields = {
            "id": row["id"],
            "conversation_id": row["conversation_id"],
            "sender": row["sender"],
            "recipient": row["recipient"],
            "content": row["content"],
            "channel": Channel(row["channel"]),
            "timestamp": row["created_at"],
            "metadata": row.get("metadata") or {},
        }
        if row["direction"] == "outbound":
            return OutgoingMessage(in_reply_to=row.get("in_reply_to"), **fields)
        return IncomingMessage(**fields)

    def _load(self, conn: psycopg.Connection, conversation_id: str) -> Optional[Conversation]:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = %s",
                (conversation_id,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            cur.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM conversation_messages "
                "WHERE conversation_id = %s ORDER BY seq",
                (conversation_id,),
            )
            messages = [self._to_message(message) for message in cur.fetchall()]
        return Conversation(
            id=row["id"],
            business_id=row["business_id"],
            channel=Channel(row["channel"]),
            customer_identifier=row["customer_identifier"],
            status=ConversationStatus(row["status"]),
            messages=messages,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_message_at=row["last_message_at"],
        )

    def _load_many(
        self, conn: psycopg.Connection, where: str, params: tuple[Any, ...]
    ) -> List[Conversation]:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT id FROM conversations WHERE {where} ORDER BY last_message_at DESC",
                params,
            )
            ids = [row["id"] for row in cur.fetchall()]
        return [c for c in (self._load(conn, cid) for cid in ids) if c is not None]

    def _require(self, conn: psycopg.Connection, conversation_id: str) -> Conversation:
        conversation = self._load(conn, conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        with self._connect() as conn:
            return self._load(conn, conversation_id)

    def get_or_create(
        self, customer_identifier: str, business_id: str, channel: Channel
    ) -> Conversation:
        conversation_id = conversation_id_for(channel, customer_identifier, business_id)
        with self._connect(business_id) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO conversations (id, business_id, channel, customer_identifier, status)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    (
                        conversation_id,
                        business_id,
                        channel.value,
                        customer_identifier,
                        ConversationStatus.ACTIVE.value,
                    ),
                )
            return self._require(conn, conversation_id)

    def append_message(self, conversation_id: str, message: Message) -> Conversation:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO conversation_messages ({_MESSAGE_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        message.id,
                        conversation_id,
                        message.direction,
                        message.sender,
                        message.recipient,
                        message.content,
                        message.channel.value,
                        Jsonb(message.metadata),
                        getattr(message, "in_reply_to", None),
                        message.timestamp,
                    ),
                )
                cur.execute(
                    "UPDATE conversations SET last_message_at = %s, updated_at = now() "
                    "WHERE id = %s",
                    (message.timestamp, conversation_id),
                )
                if cur.rowcount == 0:
                    raise ConversationNotFoundError(
                        f"Conversation {conversation_id} not found"
                    )
            return self._require(conn, conversation_id)

    def set_status(
        self, conversation_id: str, status: ConversationStatus
    ) -> Conversation:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE conversations SET status = %s, updated_at = now() "
                    "WHERE id = %s AND status <> %s",
                    (status.value, conversation_id, status.value),
                )
            return self._require(conn, conversation_id)

    def mark_read(self, conversation_id: str) -> Conversation:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE conversation_messages
                    SET metadata = metadata || '{"read": true}'::jsonb
                    WHERE conversation_id = %s AND direction = 'inbound'
                    """,
                    (conversation_id,),
                )
            return self._require(conn, conversation_id)

    def list_for_customer(self, customer_identifier: str) -> List[Conversation]:
        with self._connect() as conn:
            return self._load_many(conn, "customer_identifier = %s", (customer_identifier,))

    def list_for_business(
        self, business_id: str, status: Optional[ConversationStatus] = None
    ) -> List[Conversation]:
        with self._connect(business_id) as conn:
            if status is None:
                return self._load_many(conn, "business_id = %s", (business_id,))
            return self._load_many(
                conn, "business_id = %s AND status = %s", (business_id, status.value)
            )

    def purge_archived(self, before: datetime) -> int:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM conversations WHERE status = %s AND updated_at < %s",
                    (ConversationStatus.ARCHIVED.value, before),
                )
                return cur.rowcount


__all__ = [
    "ConversationNotFoundError",
    "ConversationRepository",
    "InMemoryConversationRepository",
    "PostgresConversationRepository",
]
