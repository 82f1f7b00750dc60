"""Tests for business-scoped database helpers."""

import pytest

from app.core.business_context import reset_business_context, set_business_context
from app.core.db import apply_business_settings, get_required_business_id


class _RecordingCursor:
    def __init__(self, statements):
        self._statements = statements

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params=None):
        self._statements.append((statement, params))


class _RecordingConnection:
    def __init__(self):
        self.statements = []

    def cursor(self):
        return _RecordingCursor(self.statements)


def test_get_required_business_id_from_context():
    token = set_business_context("biz-42", "user-123")
    try:
        assert get_required_business_id() == "biz-42"
        assert get_required_business_id("explicit") == "explicit"
    finally:
        reset_business_context(token)


def test_get_required_business_id_missing_raises():
    with pytest.raises(RuntimeError):
        get_required_business_id()


def test_apply_business_settings_sets_config():
    conn = _RecordingConnection()

    apply_business_settings(conn, "biz-7")

    [(statement, params)] = conn.statements
    assert "set_config('app.business_id'" in statement
    assert params == ("biz-7",)
