"""Tests for database session lifecycle helpers."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.db import session as db_session


@pytest.fixture
def mock_session():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def session_factory(mock_session):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=mock_session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    with patch.object(db_session, "_async_session_factory", factory):
        yield factory


class TestSessions:
    async def test_uninitialized(self):
        with patch.object(db_session, "_async_session_factory", None):
            with pytest.raises(RuntimeError, match="init_db"):
                async with db_session.get_db_session():
                    pass

    async def test_commits_on_success(self, session_factory, mock_session):
        async with db_session.get_db_session() as s:
            assert s is mock_session

        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    async def test_rolls_back_on_error(self, session_factory, mock_session):
        with pytest.raises(LookupError):
            async with db_session.get_db_session():
                raise LookupError("boom")

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()

    async def test_request_dependency_shares_the_lifecycle(self, session_factory, mock_session):
        gen = db_session.get_db()
        assert await gen.__anext__() is mock_session
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

        mock_session.commit.assert_awaited_once()


class TestEngine:
    @patch("workdesk.db.session.create_async_engine")
    async def test_pool_sized_from_settings(self, mock_create):
        engine = MagicMock()
        conn = AsyncMock()
        engine.connect.return_value.__aenter__ = AsyncMock(return_value=conn)
        engine.connect.return_value.__aexit__ = AsyncMock(return_value=False)
        engine.dispose = AsyncMock()
        mock_create.return_value = engine

        await db_session.init_db()
        try:
            kwargs = mock_create.call_args.kwargs
            assert kwargs["pool_size"] == db_session.settings.db_pool.size
            assert kwargs["max_overflow"] == db_session.settings.db_pool.max_overflow
            assert kwargs["pool_pre_ping"] is True
            conn.execute.assert_awaited_once()
            assert await db_session.get_db_health() is True
        finally:
            await db_session.close_db()

        engine.dispose.assert_awaited_once()
        assert await db_session.get_db_health() is False

    async def test_close_without_init(self):
        with patch.object(db_session, "_engine", None):
            await db_session.close_db()
