"""Tests for bearer token issuing and verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from ctfarena.auth.jwt import TokenClaims, create_access_token, reset_keys, verify_token
from ctfarena.config import get_settings
from ctfarena.errors import InvalidToken


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()


def _encode(payload: dict, key: str | None = None) -> str:
    settings = get_settings()
    return jwt.encode(payload, key or settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class TestAccessToken:
    def test_create_and_verify(self):
        token = create_access_token(user_id=7, username="alice")
        claims = verify_token(token)
        assert claims == TokenClaims(user_id=7, username="alice", is_admin=False)

    def test_admin_flag_round_trips(self):
        token = create_access_token(user_id=1, username="admin", is_admin=True)
        assert verify_token(token).is_admin is True

    def test_validity_is_seven_days(self):
        token = create_access_token(user_id=7, username="alice")
        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["exp"] - payload["iat"] == int(timedelta(days=7).total_seconds())
        assert payload["type"] == "access"
        assert payload["sub"] == "7"


class TestRejection:
    def test_expired_token(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "7",
            "username": "alice",
            "iat": now - timedelta(days=8),
            "exp": now - timedelta(days=1),
            "iss": get_settings().jwt_issuer,
            "type": "access",
        })
        with pytest.raises(InvalidToken, match="expired"):
            verify_token(token)

    def test_bad_signature(self):
        token = create_access_token(user_id=7, username="alice")
        forged = _encode(jwt.decode(token, options={"verify_signature": False}), key="another-secret-entirely-0123456789")
        with pytest.raises(InvalidToken):
            verify_token(forged)

    def test_malformed(self):
        with pytest.raises(InvalidToken):
            verify_token("not-a-jwt")

    def test_wrong_type_rejected(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "7",
            "iat": now,
            "exp": now + timedelta(hours=1),
            "iss": get_settings().jwt_issuer,
            "type": "refresh",
        })
        with pytest.raises(InvalidToken, match="Expected token type"):
            verify_token(token)

    def test_non_numeric_subject(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "alice",
            "iat": now,
            "exp": now + timedelta(hours=1),
            "iss": get_settings().jwt_issuer,
            "type": "access",
        })
        with pytest.raises(InvalidToken, match="subject"):
            verify_token(token)

    def test_wrong_issuer(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "7",
            "iat": now,
            "exp": now + timedelta(hours=1),
            "iss": "someone-else",
            "type": "access",
        })
        with pytest.raises(InvalidToken):
            verify_token(token)
