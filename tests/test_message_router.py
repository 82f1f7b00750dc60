"""Tests for conversation routing: inbound storage, replies and status changes."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.channels import InAppAdapter
from app.core.settings import MarketplaceSettings
from app.messaging import (
    Channel,
    ConversationNotFoundError,
    ConversationStatus,
    DeliveryFailedError,
    DeliveryResult,
    InMemoryConversationRepository,
    InvalidMessageError,
    InvalidTransitionError,
    MessageRouter,
)
from app.notifications import InMemoryNotificationRepository, NotificationService


class RecordingSender:
    def __init__(self, result: DeliveryResult | None = None) -> None:
        self.result = result or DeliveryResult.delivered("ext-1")
        self.sent = []

    def deliver(self, message):
        self.sent.append(message)
        return self.result


@pytest.fixture
def notifications():
    return NotificationService(InMemoryNotificationRepository())


@pytest.fixture
def senders():
    return {channel: RecordingSender() for channel in Channel}


@pytest.fixture
def router(senders, notifications):
    return MessageRouter(
        InMemoryConversationRepository(),
        senders,
        notifications=notifications,
        default_business_id="tgs-default",
    )


def test_sms_inquiry_then_reply(router, senders, notifications):
    incoming = router.handle_incoming(
        "+1 (555) 123-4567", "Do you have 225/45R17?", Channel.SMS
    )

    conversation = router.get_conversation(incoming.conversation_id)
    assert conversation.customer_identifier == "+15551234567"
    assert conversation.business_id == "tgs-default"
    assert conversation.status is ConversationStatus.ACTIVE
    assert [m.content for m in conversation.messages] == ["Do you have 225/45R17?"]
    assert conversation.unread_count == 1

    feed = notifications.list_for_business("tgs-default")
    assert len(feed) == 1
    assert feed[0].title == "New Customer Message"
    assert "(555) 123-4567" in feed[0].message
    assert feed[0].metadata["conversation_id"] == conversation.id

    reply = router.send_reply(
        conversation.id, "Yes, 4 in stock.", "operator-1", incoming.id
    )
    assert reply.recipient == "+15551234567"
    assert reply.in_reply_to == incoming.id
    assert reply.metadata["external_id"] == "ext-1"
    assert senders[Channel.SMS].sent == [reply]

    stored = router.get_conversation(conversation.id)
    assert [m.direction for m in stored.messages] == ["inbound", "outbound"]


def test_same_customer_reuses_conversation(router):
    first = router.handle_incoming("Shopper@Example.com", "Hello", Channel.EMAIL)
    second = router.handle_incoming("shopper@example.com ", "Again", Channel.EMAIL)

    assert first.conversation_id == second.conversation_id
    assert len(router.get_conversation(first.conversation_id).messages) == 2


def test_conversations_are_separated_by_business_and_channel(router):
    a = router.handle_incoming("5551234567", "hi", Channel.SMS, business_id="b1")
    b = router.handle_incoming("5551234567", "hi", Channel.SMS, business_id="b2")
    c = router.handle_incoming("5551234567", "hi", Channel.IN_APP, business_id="b1")

    assert len({a.conversation_id, b.conversation_id, c.conversation_id}) == 3
    listed = router.list_conversations("b1", ConversationStatus.ACTIVE)
    assert {conv.id for conv in listed} == {a.conversation_id, c.conversation_id}
    assert router.list_active_conversations("b2")[0].id == b.conversation_id


def test_incoming_content_is_sanitized(router):
    message = router.handle_incoming("user-1", "  <b>Need tires</b>  ", Channel.IN_APP)

    assert message.content == "bNeed tires/b"


def test_long_incoming_truncated(router):
    message = router.handle_incoming("user-1", "a" * 2500, Channel.IN_APP)

    assert len(message.content) == 2000


def test_empty_incoming_rejected(router):
    with pytest.raises(InvalidMessageError):
        router.handle_incoming("user-1", "  <> ", Channel.IN_APP)
    with pytest.raises(InvalidMessageError):
        router.handle_incoming("   ", "hello", Channel.IN_APP)


def test_reply_to_unknown_conversation(router, senders):
    with pytest.raises(ConversationNotFoundError):
        router.send_reply("conv_missing", "hi", "operator-1")

    assert all(not sender.sent for sender in senders.values())
    assert router.repository.get("conv_missing") is None
    assert router.list_conversations("tgs-default") == []
    assert router._locks == {}


def test_status_changes_on_unknown_ids_leave_no_locks(router):
    for conversation_id in ("conv_a", "conv_b", "conv_c"):
        with pytest.raises(ConversationNotFoundError):
            router.close_conversation(conversation_id)
        with pytest.raises(ConversationNotFoundError):
            router.archive_conversation(conversation_id)
        with pytest.raises(ConversationNotFoundError):
            router.mark_read(conversation_id)

    assert router._locks == {}


def test_reply_scoped_to_business(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP, business_id="b1")

    with pytest.raises(ConversationNotFoundError):
        router.send_reply(incoming.conversation_id, "hi", "op", business_id="b2")


def test_reply_in_reply_to_must_be_customer_message(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)

    with pytest.raises(InvalidMessageError):
        router.send_reply(incoming.conversation_id, "hello", "op", in_reply_to="msg_nope")


def test_failed_delivery_stores_nothing(senders, notifications):
    senders[Channel.EMAIL] = RecordingSender(DeliveryResult.retryable("HTTP 503"))
    router = MessageRouter(InMemoryConversationRepository(), senders, notifications=notifications)
    incoming = router.handle_incoming("a@example.com", "hi", Channel.EMAIL)

    with pytest.raises(DeliveryFailedError) as excinfo:
        router.send_reply(incoming.conversation_id, "hello", "op")

    assert excinfo.value.retryable is True
    assert len(router.get_conversation(incoming.conversation_id).messages) == 1


def test_missing_sender_is_permanent_failure(notifications):
    router = MessageRouter(InMemoryConversationRepository(), {}, notifications=notifications)
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)

    with pytest.raises(DeliveryFailedError) as excinfo:
        router.send_reply(incoming.conversation_id, "hello", "op")

    assert excinfo.value.retryable is False


def test_in_app_store_failure_is_a_typed_delivery_failure(notifications):
    class BrokenStore:
        def add(self, payload):
            raise RuntimeError("feed table unavailable")

    adapter = InAppAdapter(settings=MarketplaceSettings(), notifications=BrokenStore())
    router = MessageRouter(
        InMemoryConversationRepository(), {Channel.IN_APP: adapter}, notifications=notifications
    )
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)

    with pytest.raises(DeliveryFailedError) as excinfo:
        router.send_reply(incoming.conversation_id, "hello", "op")

    assert excinfo.value.retryable is False
    assert len(router.get_conversation(incoming.conversation_id).messages) == 1


def test_inbound_keeps_closed_and_archived_status(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)
    conversation_id = incoming.conversation_id

    assert router.close_conversation(conversation_id).status is ConversationStatus.CLOSED
    router.handle_incoming("user-1", "one more thing", Channel.IN_APP)
    conversation = router.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.CLOSED
    assert len(conversation.messages) == 2

    assert router.archive_conversation(conversation_id).status is ConversationStatus.ARCHIVED
    with pytest.raises(InvalidTransitionError):
        router.close_conversation(conversation_id)

    router.handle_incoming("user-1", "still there?", Channel.IN_APP)
    conversation = router.get_conversation(conversation_id)
    assert conversation.status is ConversationStatus.ARCHIVED
    assert len(conversation.messages) == 3
    assert router.list_active_conversations("tgs-default") == []


def test_mark_read_clears_unread(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)
    router.handle_incoming("user-1", "hello?", Channel.IN_APP)

    conversation = router.mark_read(incoming.conversation_id)

    assert conversation.unread_count == 0


def test_list_customer_conversations_normalizes_identifier(router):
    router.handle_incoming("555-123-4567", "hi", Channel.SMS)

    found = router.list_customer_conversations("(555) 123 4567", Channel.SMS)

    assert len(found) == 1


def test_purge_archived_respects_retention(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)
    router.archive_conversation(incoming.conversation_id)

    assert router.purge_archived(retention_days=30) == 0
    assert router.purge_archived(retention_days=-1) == 1
    with pytest.raises(ConversationNotFoundError):
        router.get_conversation(incoming.conversation_id)


def test_notification_failure_does_not_block_storage(senders):
    class BrokenNotifications:
        def notify_business(self, *args, **kwargs):
            raise RuntimeError("mail server down")

    router = MessageRouter(
        InMemoryConversationRepository(), senders, notifications=BrokenNotifications()
    )

    message = router.handle_incoming("user-1", "hi", Channel.IN_APP)

    assert router.get_conversation(message.conversation_id).messages[0].id == message.id


def test_concurrent_replies_all_appended(router):
    incoming = router.handle_incoming("user-1", "hi", Channel.IN_APP)

    threads = [
        threading.Thread(
            target=router.send_reply, args=(incoming.conversation_id, f"reply {i}", "op")
        )
        for i in range(10)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    conversation = router.get_conversation(incoming.conversation_id)
    assert len(conversation.messages) == 11
    assert conversation.last_message_at <= datetime.now(timezone.utc) + timedelta(seconds=1)
