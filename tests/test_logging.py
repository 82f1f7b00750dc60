import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest
from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from app.app_logging import SECURITY_LOGGER_NAME, JsonFormatter, _install_access_logging, init_logging
from app.core.business_context import reset_business_context, set_business_context
from app.security.events import Severity, log_security_event

_LOGGERS = ("app", "uvicorn.access", SECURITY_LOGGER_NAME)


@pytest.fixture(autouse=True)
def clean_handlers():
    for name in _LOGGERS:
        logging.getLogger(name).handlers.clear()
    yield
    for name in _LOGGERS:
        logging.getLogger(name).handlers.clear()


def _flush_all() -> None:
    for name in _LOGGERS:
        for handler in logging.getLogger(name).handlers:
            handler.flush()


def test_rotating_handlers_for_each_log(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")

    init_logging()

    for name in _LOGGERS:
        handler = next(
            h for h in logging.getLogger(name).handlers if isinstance(h, TimedRotatingFileHandler)
        )
        assert handler.when == "MIDNIGHT"
        assert handler.backupCount == 5


def test_init_logging_replaces_existing_access_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    access_logger = logging.getLogger("uvicorn.access")
    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()

    assert stream_handler not in access_logger.handlers


def test_security_events_are_scrubbed_and_written(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    init_logging()

    entry = log_security_event(
        "STRIPE_WEBHOOK_INVALID_SIGNATURE",
        {"ip": "203.0.113.9", "password": "hunter2"},
        Severity.HIGH,
    )
    _flush_all()

    assert entry["severity"] == "HIGH"
    assert entry["details"]["password"] == "***"
    text = (tmp_path / "security.log").read_text()
    assert "STRIPE_WEBHOOK_INVALID_SIGNATURE" in text
    assert "hunter2" not in text


def test_json_formatter_includes_security_event():
    record = logging.LogRecord(
        SECURITY_LOGGER_NAME, logging.WARNING, __file__, 1, "SECURITY_EVENT %s", ("x",), None
    )
    record.security_event = {"event": "IP_VIOLATION"}

    data = json.loads(JsonFormatter().format(record))

    assert data["level"] == "WARNING"
    assert data["security_event"] == {"event": "IP_VIOLATION"}


def test_access_log_redacts_credentials_and_provider_signatures(app_factory, tmp_path):
    app = app_factory(tmp_path, log_request_bodies=True)

    with TestClient(app) as client:
        resp = client.post(
            "/echo",
            json={"password": "secret", "value": 1},
            headers={"Authorization": "Bearer secret", "Stripe-Signature": "t=1,v1=abc"},
        )
        assert resp.status_code == 200
    _flush_all()

    access_line = (tmp_path / "access.log").read_text().splitlines()[-1]
    data = json.loads(access_line.split(": ", 1)[1])
    assert data["headers"]["authorization"] == "***"
    assert data["headers"]["stripe-signature"] == "***"
    assert data["body"]["password"] == "***"
    assert data["body"]["value"] == 1


def test_access_logging_echoes_request_id_and_skips_health(caplog):
    app = FastAPI()

    @app.get("/ping")
    async def ping(request: Request):
        return {"rid": request.state.request_id}

    @app.get("/api/health")
    async def health():  # pragma: no cover - simple
        return {"status": "ok"}

    _install_access_logging(app)

    with TestClient(app) as client, caplog.at_level(logging.INFO, logger="uvicorn.access"):
        resp = client.get("/ping", headers={"X-Request-Id": "abc"})
        assert resp.headers["X-Request-Id"] == "abc"
        assert resp.json() == {"rid": "abc"}
        assert json.loads(caplog.records[0].getMessage())["request_id"] == "abc"

        caplog.clear()
        client.get("/api/health")
        assert len(caplog.records) == 0


def test_security_events_name_the_calling_staff_member():
    token = set_business_context("biz-7", "user-3", "operator")
    try:
        entry = log_security_event("INSUFFICIENT_ROLE", {"path": "/api/payments"})
    finally:
        reset_business_context(token)

    assert entry["actor"] == {"business_id": "biz-7", "user_id": "user-3", "role": "operator"}
    assert "actor" not in log_security_event("IP_VIOLATION", {"ip": "203.0.113.9"})
