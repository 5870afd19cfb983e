"""
Signed bearer tokens for participants and admins.

A token carries the identity claims (``sub`` = user id, ``username``,
``is_admin``) and is valid for a fixed multi-day window. Token validity is
independent of the one-hour challenge session: a holder of a valid token may
still have an expired session.

HS256 with a shared secret is the default; RS256 loads a PEM key pair from disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from ctfarena.config import get_settings
from ctfarena.errors import InvalidToken

_private_key: str | None = None
_public_key: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims decoded from a verified token."""

    user_id: int
    username: str
    is_admin: bool


def _load_keys() -> tuple[str, str]:
    """Return (signing key, verification key) for the configured algorithm."""
    global _private_key, _public_key  # noqa: PLW0603
    settings = get_settings()
    if settings.jwt_algorithm.startswith("HS"):
        return settings.jwt_secret_key, settings.jwt_secret_key
    if _private_key is None or _public_key is None:
        _private_key = Path(settings.jwt_private_key_path).read_text()
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _private_key, _public_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _private_key, _public_key  # noqa: PLW0603
    _private_key = None
    _public_key = None


def create_access_token(user_id: int, username: str, *, is_admin: bool = False) -> str:
    """
    Create a bearer token for a participant or admin.

    Args:
        user_id: The user's database ID.
        username: Display name embedded for convenience.
        is_admin: Whether the holder may use admin endpoints.

    Returns:
        Encoded JWT string.
    """
    signing_key, _ = _load_keys()
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "username": username,
        "is_admin": is_admin,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_token_expire_days),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, signing_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> TokenClaims:
    """
    Verify and decode a bearer token. Pure: no storage access.

    Raises:
        InvalidToken: If the token is malformed, badly signed, expired or of the wrong type.
    """
    _, verify_key = _load_keys()
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            verify_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token has expired") from None
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Invalid token: {e}") from e

    if payload.get("type") != "access":
        raise InvalidToken(f"Expected token type 'access', got '{payload.get('type')}'")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidToken("Invalid token subject") from None

    return TokenClaims(
        user_id=user_id,
        username=str(payload.get("username", "")),
        is_admin=bool(payload.get("is_admin", False)),
    )
