"""Signed bearer access tokens.

Tokens are HS256 JWTs carrying the user id as ``sub``. They identify the
user only; the active role is chosen per request (see api.dependencies).
"""

import uuid
from datetime import timedelta

import jwt

from workdesk.config import settings
from workdesk.db.models import utc_now
from workdesk.errors import InvalidTokenError


def create_access_token(user_id: uuid.UUID, ttl: timedelta | None = None) -> str:
    """Issue a token for ``user_id`` (default lifetime from config)."""
    now = utc_now()
    if ttl is None:
        ttl = timedelta(hours=settings.auth.token_ttl_hours)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl,
        "type": "access",
    }
    return jwt.encode(payload, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Verify a token and return the user id it was issued for.

    Raises InvalidTokenError for a bad signature, expiry, wrong token type
    or a missing/malformed subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.auth.jwt_secret,
            algorithms=[settings.auth.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError("Token has expired") from None
    except jwt.InvalidTokenError:
        raise InvalidTokenError("Invalid authentication token") from None

    if payload.get("type") != "access":
        raise InvalidTokenError("Invalid authentication token")

    try:
        return uuid.UUID(payload["sub"])
    except (ValueError, TypeError):
        raise InvalidTokenError("Invalid authentication token") from None
