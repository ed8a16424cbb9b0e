"""Tests for access token issue and verification."""

import uuid
from datetime import timedelta

import jwt
import pytest

from workdesk.auth.tokens import create_access_token, decode_access_token
from workdesk.config import settings
from workdesk.db.models import utc_now
from workdesk.errors import InvalidTokenError


def _sign(payload: dict) -> str:
    return jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)


class TestAccessTokens:
    def test_roundtrip_returns_user_id(self):
        user_id = uuid.uuid4()
        token = create_access_token(user_id)
        assert decode_access_token(token) == user_id

    def test_expired_token(self):
        token = create_access_token(uuid.uuid4(), ttl=timedelta(seconds=-10))
        with pytest.raises(InvalidTokenError, match="expired") as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "INVALID_TOKEN"

    def test_tampered_token(self):
        token = create_access_token(uuid.uuid4())
        with pytest.raises(InvalidTokenError):
            decode_access_token(token.rsplit(".", 1)[0] + ".c2lnbmF0dXJlLWZvcmdlZA")

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "exp": utc_now() + timedelta(hours=1), "type": "access"},
            "some-other-secret-that-is-long-enough-for-hs256",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_wrong_token_type(self):
        token = _sign(
            {"sub": str(uuid.uuid4()), "exp": utc_now() + timedelta(hours=1), "type": "refresh"}
        )
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_malformed_subject(self):
        token = _sign({"sub": "not-a-uuid", "exp": utc_now() + timedelta(hours=1), "type": "access"})
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_missing_expiry(self):
        token = _sign({"sub": str(uuid.uuid4()), "type": "access"})
        with pytest.raises(InvalidTokenError):
            decode_access_token(token)

    def test_garbage(self):
        with pytest.raises(InvalidTokenError):
            decode_access_token("not.a.jwt")
