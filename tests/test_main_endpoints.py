"""Tests for the endpoints defined in app/main.py plus uploads and the dashboard."""

import io

from app.__version__ import __build_date__, __commit_sha__, __version__
from app.core.container import run_maintenance
from app.messaging import Channel


class TestHealthEndpoint:
    def test_health_returns_ok_status(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_health_skips_security_headers(self, client):
        resp = client.get("/api/health")
        assert "X-RateLimit-Limit" not in resp.headers


class TestVersionEndpoint:
    def test_version_fields(self, client):
        resp = client.get("/api/version")
        assert resp.status_code == 200
        assert resp.json() == {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }


class TestConfigEndpoint:
    def test_config_is_public(self, client):
        resp = client.get("/api/config")
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {
            "BRAND_NAME",
            "APP_URL",
            "STRIPE_PUBLISHABLE_KEY",
            "UPLOAD_MAX_SIZE",
            "SOCIAL_DRY_RUN",
        }
        assert data["STRIPE_PUBLISHABLE_KEY"] == ""
        assert data["SOCIAL_DRY_RUN"] is True

    def test_brand_name_from_env(self, monkeypatch, business_auth):
        import importlib

        from fastapi.testclient import TestClient

        from app.core.settings import reset_settings_cache

        monkeypatch.setenv("BRAND_NAME", "Tread Co")
        reset_settings_cache()
        import app.main as main

        importlib.reload(main)
        resp = TestClient(main.app).get("/api/config")
        assert resp.json()["BRAND_NAME"] == "Tread Co"
        assert main.app.title == "Tread Co Marketplace"


def test_metrics_exposed(client):
    client.get("/api/health")
    resp = client.get("/api/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text


class TestUploads:
    def test_upload_png(self, client, business_auth):
        resp = client.post(
            "/api/uploads",
            files={"file": ("tire.png", io.BytesIO(b"\x89PNG fake"), "image/png")},
            headers=business_auth.header("operator"),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["url"].startswith("/uploads/") and data["url"].endswith(".png")
        assert data["size"] == 9

        served = client.get(data["url"])
        assert served.status_code == 200
        assert served.content == b"\x89PNG fake"

    def test_upload_rejects_other_types(self, client, business_auth):
        resp = client.post(
            "/api/uploads",
            files={"file": ("notes.txt", io.BytesIO(b"hello"), "text/plain")},
            headers=business_auth.header("operator"),
        )
        assert resp.status_code == 400
        assert "Only JPEG, PNG, and WebP" in resp.json()["detail"]

    def test_upload_requires_operator(self, client, business_auth):
        resp = client.post(
            "/api/uploads",
            files={"file": ("tire.png", io.BytesIO(b"png"), "image/png")},
            headers=business_auth.header("viewer"),
        )
        assert resp.status_code == 403


def test_dashboard_stats(client, business_auth):
    services = client.app.state.services
    business_id = str(business_auth.business_id)
    services.message_router.handle_incoming(
        "5551234567", "Any 16in tires?", Channel.SMS, business_id=business_id
    )

    resp = client.get("/api/dashboard/stats", headers=business_auth.header("viewer"))

    assert resp.status_code == 200
    data = resp.json()
    assert data["active_conversations"] == 1
    assert data["unread_messages"] == 1
    assert data["pending_notifications"] >= 1
    assert data["paid_payments"] == 0
    assert data["revenue"] == 0.0


def test_run_maintenance_summary(client, business_auth):
    services = client.app.state.services
    message = services.message_router.handle_incoming(
        "user-1", "hi", Channel.IN_APP, business_id="tgs-default"
    )
    services.message_router.archive_conversation(message.conversation_id)

    summary = run_maintenance(services)

    assert set(summary) == {
        "rate_limit_entries",
        "ip_records",
        "archived_conversations",
        "social_posts",
    }
    # Default retention keeps a freshly archived conversation.
    assert summary["archived_conversations"] == 0
    assert summary["social_posts"] == 0


def test_security_limiter_counts_in_limits_storage(client):
    from limits.storage import MemoryStorage

    limiter = client.app.state.services.rate_limiter
    assert isinstance(limiter.storage, MemoryStorage)

    client.get("/api/config", headers={"X-Forwarded-For": "198.51.100.77"})

    assert limiter.stats()["total_entries"] >= 1
