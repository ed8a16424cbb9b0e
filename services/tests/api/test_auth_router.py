"""Tests for the login and current-user endpoints."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.api.app import create_app
from workdesk.api.dependencies import AuthenticatedUser, get_current_user
from workdesk.auth.passwords import hash_password
from workdesk.auth.tokens import decode_access_token
from workdesk.db.session import get_db

BASE = "http://test"


def _db_user(password="s3cret-pass", roles=("translator", "reviewer"), is_active=True):
    user = MagicMock()
    user.id = uuid.uuid4()
    user.username = "wang"
    user.name = "Wang"
    user.email = "wang@example.com"
    user.password_hash = hash_password(password)
    user.roles = list(roles)
    user.is_active = is_active
    return user


def _app_with_db(mock_db):
    app = create_app()

    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db
    return app


@pytest.fixture
def mock_db():
    return AsyncMock(spec=AsyncSession)


class TestLogin:
    async def test_success(self, mock_db):
        user = _db_user()
        result = MagicMock()
        result.scalar_one_or_none.return_value = user
        mock_db.execute.return_value = result
        app = _app_with_db(mock_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            res = await client.post(
                "/api/v1/auth/login", json={"username": "wang", "password": "s3cret-pass"}
            )

        assert res.status_code == 200
        body = res.json()
        assert decode_access_token(body["token"]) == user.id
        assert body["user"]["defaultRole"] == "reviewer"
        assert body["user"]["roles"][0] == {"code": "translator", "name": "翻译"}
        assert user.last_login_at is not None
        mock_db.commit.assert_awaited()

    async def test_wrong_password(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = _db_user()
        mock_db.execute.return_value = result
        app = _app_with_db(mock_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            res = await client.post(
                "/api/v1/auth/login", json={"username": "wang", "password": "nope"}
            )

        assert res.status_code == 401
        assert res.json()["error"]["code"] == "INVALID_CREDENTIALS"

    async def test_unknown_user(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db.execute.return_value = result
        app = _app_with_db(mock_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            res = await client.post("/api/v1/auth/login", json={"username": "x", "password": "y"})

        assert res.status_code == 401
        assert res.json()["error"]["code"] == "INVALID_CREDENTIALS"

    async def test_disabled_user(self, mock_db):
        result = MagicMock()
        result.scalar_one_or_none.return_value = _db_user(is_active=False)
        mock_db.execute.return_value = result
        app = _app_with_db(mock_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            res = await client.post(
                "/api/v1/auth/login", json={"username": "wang", "password": "s3cret-pass"}
            )

        assert res.status_code == 401
        assert res.json()["error"]["code"] == "USER_DISABLED"

    async def test_missing_fields(self, mock_db):
        app = _app_with_db(mock_db)

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            res = await client.post("/api/v1/auth/login", json={"username": "wang"})

        assert res.status_code == 400
        mock_db.execute.assert_not_awaited()


class TestMe:
    async def test_reports_bound_role(self, mock_db):
        app = _app_with_db(mock_db)
        user = AuthenticatedUser(
            id=uuid.uuid4(),
            username="li",
            name="Li",
            email="li@example.com",
            roles=["sales", "pm"],
        )
        app.dependency_overrides[get_current_user] = lambda: user

        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE) as client:
            default = await client.get("/api/v1/auth/me")
            chosen = await client.get("/api/v1/auth/me", headers={"X-Role": "sales"})

        assert default.json()["data"]["activeRole"] == "pm"
        assert default.json()["data"]["roleSource"] == "default"
        data = chosen.json()["data"]
        assert data["activeRole"] == "sales"
        assert data["roleSource"] == "header"
        assert data["permissions"]["project.view"] == "sales"
