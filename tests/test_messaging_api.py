"""HTTP tests for customer inquiries and the conversation inbox."""

from __future__ import annotations

import pytest

from app.messaging import Channel, DeliveryResult


def _inquiry(business_auth, **overrides) -> dict:
    payload = {
        "customer_identifier": "(555) 123-4567",
        "channel": "SMS",
        "message": "Do you have 225/45R17 tires?",
        "customer_name": "Jane",
        "inquiry_type": "tires",
        "business_id": str(business_auth.business_id),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def conversation_id(client, business_auth) -> str:
    response = client.post(
        "/api/messages/inquiry",
        json=_inquiry(business_auth),
        headers={"X-Forwarded-For": "198.51.100.10"},
    )
    assert response.status_code == 200
    return response.json()["conversation_id"]


def test_sms_inquiry_is_acknowledged(client, business_auth):
    response = client.post(
        "/api/messages/inquiry",
        json=_inquiry(business_auth),
        headers={"X-Forwarded-For": "198.51.100.1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["channel"] == "SMS"
    assert body["conversation_id"].startswith("conv_")
    assert body["estimated_response_time"] == "30 minutes"
    assert body["acknowledgment"].startswith("Hi Jane! Thanks for your message about tires.")

    inbox = client.get("/api/conversations", headers=business_auth.header("viewer")).json()
    assert inbox["total"] == 1
    assert inbox["conversations"][0]["customer_identifier"] == "5551234567"
    assert inbox["conversations"][0]["unread_count"] == 1

    feed = client.get("/api/notifications", headers=business_auth.header("viewer")).json()
    assert feed["notifications"][0]["title"] == "New Customer Message"


def test_email_inquiry_response_time(client, business_auth):
    response = client.post(
        "/api/messages/inquiry",
        json=_inquiry(business_auth, channel="EMAIL", customer_identifier="Jane@Example.com"),
        headers={"X-Forwarded-For": "198.51.100.2"},
    )

    assert response.status_code == 200
    assert response.json()["estimated_response_time"] == "1-2 hours"


@pytest.mark.parametrize(
    "overrides, detail",
    [
        ({"customer_identifier": "12345"}, "Invalid phone number format"),
        ({"channel": "EMAIL", "customer_identifier": "not-an-email"}, "Invalid email address format"),
        ({"message": "   "}, "Message content is required"),
        ({"message": "x" * 2001}, "Message too long (max 2000 characters)"),
        ({"message": "hi'; DROP TABLE conversations; --"}, "Message contains invalid content"),
    ],
)
def test_inquiry_validation(client, business_auth, overrides, detail):
    response = client.post(
        "/api/messages/inquiry",
        json=_inquiry(business_auth, **overrides),
        headers={"X-Forwarded-For": "198.51.100.3"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_suspicious_inquiry_counts_against_ip(client, business_auth):
    client.post(
        "/api/messages/inquiry",
        json=_inquiry(business_auth, message="<script>alert(1)</script>"),
        headers={"X-Forwarded-For": "198.51.100.4"},
    )

    stats = client.app.state.services.ip_reputation.stats()
    assert stats["suspicious_ips"] == 1


def test_inquiry_limited_to_three_per_hour(client, business_auth):
    headers = {"X-Forwarded-For": "198.51.100.5"}
    for _ in range(3):
        assert client.post("/api/messages/inquiry", json=_inquiry(business_auth), headers=headers).status_code == 200

    response = client.post("/api/messages/inquiry", json=_inquiry(business_auth), headers=headers)

    assert response.status_code == 429


def test_reply_is_delivered_and_stored(client, business_auth, conversation_id):
    detail = client.get(
        f"/api/conversations/{conversation_id}", headers=business_auth.header("viewer")
    ).json()
    inbound_id = detail["messages"][0]["id"]

    response = client.post(
        f"/api/conversations/{conversation_id}/reply",
        json={"content": "Yes, we have 4 in stock.", "in_reply_to": inbound_id},
        headers=business_auth.header("operator"),
    )

    assert response.status_code == 200
    message = response.json()["message"]
    assert message["recipient"] == "5551234567"
    assert message["in_reply_to"] == inbound_id
    assert message["metadata"]["external_id"].startswith("dev_sms_")

    detail = client.get(
        f"/api/conversations/{conversation_id}", headers=business_auth.header("viewer")
    ).json()
    assert [m["direction"] for m in detail["messages"]] == ["inbound", "outbound"]
    assert detail["total_messages"] == 2


def test_reply_requires_operator(client, business_auth, conversation_id):
    response = client.post(
        f"/api/conversations/{conversation_id}/reply",
        json={"content": "hello"},
        headers=business_auth.header("viewer"),
    )

    assert response.status_code == 403


def test_reply_rejects_suspicious_content(client, business_auth, conversation_id):
    response = client.post(
        f"/api/conversations/{conversation_id}/reply",
        json={"content": "<iframe src=//evil.example>"},
        headers=business_auth.header("operator"),
    )

    assert response.status_code == 400


@pytest.mark.parametrize(
    "result, status_code, retryable",
    [
        (DeliveryResult.retryable("HTTP 503: busy"), 503, True),
        (DeliveryResult.permanent("HTTP 400: invalid number"), 502, False),
    ],
)
def test_failed_delivery_is_reported_and_not_stored(
    client, business_auth, conversation_id, monkeypatch, result, status_code, retryable
):
    adapter = client.app.state.services.adapters[Channel.SMS]
    monkeypatch.setattr(adapter, "deliver", lambda message: result)

    response = client.post(
        f"/api/conversations/{conversation_id}/reply",
        json={"content": "On our way"},
        headers=business_auth.header("operator"),
    )

    assert response.status_code == status_code
    assert response.json()["detail"]["retryable"] is retryable
    detail = client.get(
        f"/api/conversations/{conversation_id}", headers=business_auth.header("viewer")
    ).json()
    assert detail["total_messages"] == 1


def test_conversation_hidden_from_other_business(client, business_auth, conversation_id):
    other = business_auth.create_business("Across Town Tires", "across-town")

    response = client.get(
        f"/api/conversations/{conversation_id}", headers=business_auth.header("admin", other)
    )

    assert response.status_code == 404


def test_status_actions(client, business_auth, conversation_id):
    path = f"/api/conversations/{conversation_id}"
    headers = business_auth.header("operator")

    read = client.patch(path, json={"action": "mark_read"}, headers=headers)
    assert read.json()["unread_count"] == 0

    closed = client.patch(path, json={"action": "close"}, headers=headers)
    assert closed.json()["status"] == "CLOSED"

    archived = client.patch(path, json={"action": "archive"}, headers=headers)
    assert archived.json()["status"] == "ARCHIVED"

    assert client.patch(path, json={"action": "close"}, headers=headers).status_code == 409
    assert client.patch(path, json={"action": "delete"}, headers=headers).status_code == 422

    listed = client.get(
        "/api/conversations", params={"status": "ARCHIVED"}, headers=business_auth.header("viewer")
    ).json()
    assert listed["total"] == 1
    assert listed["active_count"] == 0


def test_unknown_conversation(client, business_auth):
    response = client.get("/api/conversations/conv_missing", headers=business_auth.header("viewer"))

    assert response.status_code == 404
