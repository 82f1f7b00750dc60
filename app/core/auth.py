"""Decoding of business-scoped bearer tokens."""

from __future__ import annotations

import os
from typing import cast

from typing_extensions import TypedDict

import jwt
from fastapi import HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

__all__ = [
    "AccessTokenPayload",
    "TokenConfigurationError",
    "TokenValidationError",
    "decode_access_token",
    "get_business_context",
    "get_optional_business_context",
    "read_bearer_token",
]


class TokenConfigurationError(RuntimeError):
    """Raised when token verification settings are missing."""


class TokenValidationError(ValueError):
    """Raised when the provided access token cannot be validated."""


class _RequiredClaims(TypedDict):
    business_id: str
    user_id: str


class AccessTokenPayload(_RequiredClaims, total=False):
    """Decoded JWT payload for business-scoped authentication."""

    aud: str | list[str]
    business_slug: str
    email: str
    exp: int
    iat: int
    iss: str
    name: str
    role: str
    roles: list[str]
    type: str


def _get_env(name: str, *, required: bool = True, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if required and (value is None or not value.strip()):
        raise TokenConfigurationError(
            f"Environment variable '{name}' must be set for token validation.",
        )
    if value is None:
        return ""
    return value.strip()


def decode_access_token(token: str) -> AccessTokenPayload:
    """Decode and validate an access token.

    Raises:
        TokenConfigurationError: If the signing configuration is missing.
        TokenValidationError: If the signature, claims or expiry are invalid.
    """

    secret_key = _get_env("AUTH_TOKEN_SECRET")
    audience = _get_env("AUTH_TOKEN_AUDIENCE")
    issuer = _get_env("AUTH_TOKEN_ISSUER")
    algorithm = _get_env("AUTH_TOKEN_ALGORITHM", required=False, default="HS256")

    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenValidationError("Access token has expired.") from exc
    except InvalidTokenError as exc:
        raise TokenValidationError("Access token is invalid.") from exc

    if "business_id" not in payload or "user_id" not in payload:
        raise TokenValidationError(
            "Access token payload must include 'business_id' and 'user_id'.",
        )
    type_claim = payload.get("type")
    if type_claim and type_claim != "access":
        raise TokenValidationError("Token must be an access token.")

    return cast(AccessTokenPayload, payload)


def read_bearer_token(request: Request) -> str:
    """Return the bearer credentials from ``request`` or raise ``401``."""

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    scheme, _, credentials = authorization.partition(" ")
    if not credentials or scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must use Bearer scheme.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials


async def get_business_context(request: Request) -> AccessTokenPayload:
    """Extract the business context from the ``Authorization`` header.

    Raises:
        HTTPException: ``401`` when the header is missing or invalid, ``500``
            when token verification is not configured.
    """

    credentials = read_bearer_token(request)
    try:
        return decode_access_token(credentials)
    except TokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except TokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_optional_business_context(request: Request) -> AccessTokenPayload | None:
    """Like :func:`get_business_context` for public routes; anonymous callers get ``None``."""

    if not request.headers.get("Authorization"):
        return None
    try:
        return decode_access_token(read_bearer_token(request))
    except (HTTPException, TokenConfigurationError, TokenValidationError):
        return None
