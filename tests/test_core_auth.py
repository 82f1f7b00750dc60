"""Tests for business-scoped authentication helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from app.core.auth import (
    AccessTokenPayload,
    TokenConfigurationError,
    TokenValidationError,
    decode_access_token,
    get_business_context,
    get_optional_business_context,
)
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient


@pytest.fixture()
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for token decoding."""

    monkeypatch.setenv("AUTH_TOKEN_SECRET", "secret-key")
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "tire-marketplace-api")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "tire-marketplace")
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")


def _issue_token(
    *,
    secret: str = "secret-key",
    audience: str = "tire-marketplace-api",
    issuer: str = "tire-marketplace",
    business_id: str | None = "business-123",
    user_id: str | None = "user-456",
    **extra_claims: str | list[str] | int,
) -> str:
    """Generate a signed JWT for testing purposes."""

    payload: dict[str, object] = {
        "aud": audience,
        "iss": issuer,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    if business_id is not None:
        payload["business_id"] = business_id
    if user_id is not None:
        payload["user_id"] = user_id
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def test_decode_access_token_success(token_env: None) -> None:
    token = _issue_token(roles=["admin"])

    payload = decode_access_token(token)

    assert payload["business_id"] == "business-123"
    assert payload["user_id"] == "user-456"
    assert payload["roles"] == ["admin"]


def test_decode_access_token_missing_required_claims(token_env: None) -> None:
    """Tokens missing business or user identifiers are rejected."""

    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(user_id=None))
    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(business_id=None))


def test_decode_access_token_requires_access_type(token_env: None) -> None:
    with pytest.raises(TokenValidationError):
        decode_access_token(_issue_token(type="refresh"))


def test_decode_access_token_rejects_expired(token_env: None) -> None:
    token = jwt.encode(
        {
            "aud": "tire-marketplace-api",
            "iss": "tire-marketplace",
            "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
            "business_id": "b",
            "user_id": "u",
        },
        "secret-key",
        algorithm="HS256",
    )

    with pytest.raises(TokenValidationError, match="expired"):
        decode_access_token(token)


def test_decode_access_token_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("AUTH_TOKEN_SECRET", raising=False)
    monkeypatch.delenv("AUTH_TOKEN_AUDIENCE", raising=False)
    monkeypatch.delenv("AUTH_TOKEN_ISSUER", raising=False)

    with pytest.raises(TokenConfigurationError):
        decode_access_token("token")


def _create_test_client() -> TestClient:
    """Create a FastAPI application wired with the business dependencies."""

    app = FastAPI()

    @app.get("/business")
    async def read_business(
        payload: AccessTokenPayload = Depends(get_business_context),
    ) -> AccessTokenPayload:
        return payload

    @app.get("/maybe")
    async def read_optional(
        payload: AccessTokenPayload | None = Depends(get_optional_business_context),
    ) -> dict:
        return {"business_id": payload["business_id"] if payload else None}

    return TestClient(app)


def test_get_business_context_success(token_env: None) -> None:
    client = _create_test_client()

    response = client.get(
        "/business", headers={"Authorization": f"Bearer {_issue_token()}"}
    )

    assert response.status_code == 200
    assert response.json()["business_id"] == "business-123"


def test_get_business_context_missing_header(token_env: None) -> None:
    client = _create_test_client()

    response = client.get("/business")

    assert response.status_code == 401


def test_get_business_context_invalid_scheme(token_env: None) -> None:
    client = _create_test_client()

    response = client.get(
        "/business", headers={"Authorization": f"Token {_issue_token()}"}
    )

    assert response.status_code == 401


def test_get_business_context_invalid_signature(token_env: None) -> None:
    client = _create_test_client()
    token = _issue_token(secret="another-secret")

    response = client.get("/business", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_get_business_context_configuration_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Configuration issues propagate as HTTP 500 errors."""

    monkeypatch.delenv("AUTH_TOKEN_SECRET", raising=False)
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "tire-marketplace-api")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "tire-marketplace")

    client = _create_test_client()

    response = client.get("/business", headers={"Authorization": "Bearer token"})

    assert response.status_code == 500


def test_optional_context_is_none_for_anonymous_or_invalid(token_env: None) -> None:
    client = _create_test_client()

    assert client.get("/maybe").json() == {"business_id": None}
    assert client.get(
        "/maybe", headers={"Authorization": "Bearer not-a-token"}
    ).json() == {"business_id": None}
    assert client.get(
        "/maybe", headers={"Authorization": f"Bearer {_issue_token()}"}
    ).json() == {"business_id": "business-123"}
