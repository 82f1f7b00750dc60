"""Integration tests for the business context middleware."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from app.core.business_context import get_current_business_id, get_current_role
from app.core.business_middleware import BusinessContextMiddleware, is_public_path


@pytest.fixture(autouse=True)
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_TOKEN_SECRET", "secret-key")
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "tire-marketplace-api")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "tire-marketplace")
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")


def _create_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(BusinessContextMiddleware)

    @app.get("/api/listings")
    async def read_context(request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "business_id": request.state.business_id,
                "user_id": request.state.user_id,
                "context_business": get_current_business_id(),
                "context_role": get_current_role(),
            }
        )

    @app.get("/api/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.get("/api/marketplace/listings")
    async def marketplace() -> JSONResponse:
        return JSONResponse({"items": []})

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_create_app(), raise_server_exceptions=False)


@pytest.fixture
def token_factory() -> Callable[..., str]:
    def _issue_token(
        *,
        business_id: str = "biz-1",
        user_id: str = "user-1",
        expires_in: int = 300,
        secret: str = "secret-key",
        **claims: Any,
    ) -> str:
        payload: dict[str, Any] = {
            "business_id": business_id,
            "user_id": user_id,
            "aud": "tire-marketplace-api",
            "iss": "tire-marketplace",
            "exp": int(time.time()) + expires_in,
            "type": "access",
            **claims,
        }
        return str(jwt.encode(payload, secret, algorithm="HS256"))

    return _issue_token


def test_middleware_sets_state_and_context(client, token_factory) -> None:
    response = client.get(
        "/api/listings", headers={"Authorization": f"Bearer {token_factory()}"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "business_id": "biz-1",
        "user_id": "user-1",
        "context_business": "biz-1",
        "context_role": None,
    }
    assert get_current_business_id() is None


def test_staff_role_reaches_context(client, token_factory) -> None:
    with_role = client.get(
        "/api/listings",
        headers={"Authorization": f"Bearer {token_factory(role='operator')}"},
    )
    roles_list = client.get(
        "/api/listings",
        headers={"Authorization": f"Bearer {token_factory(roles=['admin'])}"},
    )

    assert with_role.json()["context_role"] == "operator"
    assert roles_list.json()["context_role"] == "admin"
    assert get_current_role() is None


def test_missing_token_returns_unauthorized(client) -> None:
    response = client.get("/api/listings")

    assert response.status_code == 401


def test_forged_or_expired_token_returns_unauthorized(client, token_factory) -> None:
    forged = token_factory(secret="another-secret")
    expired = token_factory(expires_in=-60)

    for token in (forged, expired):
        response = client.get("/api/listings", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


def test_public_endpoints_bypass_auth(client) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/api/marketplace/listings").status_code == 200


@pytest.mark.parametrize(
    "method, path, public",
    [
        ("GET", "/api/health", True),
        ("POST", "/api/messages/inquiry", True),
        ("POST", "/api/webhooks/stripe", True),
        ("GET", "/api/marketplace/yard-sale", True),
        ("POST", "/api/marketplace/listings", False),
        ("POST", "/api/accounts/login", True),
        ("GET", "/api/accounts/me", False),
        ("OPTIONS", "/api/listings", True),
        ("GET", "/api/conversations", False),
    ],
)
def test_is_public_path(method: str, path: str, public: bool) -> None:
    assert is_public_path(method, path) is public
