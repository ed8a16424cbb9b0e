"""
Database engine and session lifecycle for the Workdesk API server.

The engine and session factory are process globals created by ``init_db`` at
startup and disposed by ``close_db``. Request handlers get a session through
the ``get_db`` dependency; startup code and the permission refresher use the
``get_db_session`` context manager. Both commit when the caller finishes
cleanly and roll back on any exception.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workdesk.config import settings
from workdesk.logging_config import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized - call init_db() first")
    return _async_session_factory


async def init_db() -> None:
    """Create the engine from settings and check that the database answers."""
    global _engine, _async_session_factory  # noqa: PLW0603
    pool = settings.db_pool
    logger.info(
        "Initializing database connection",
        pool_size=pool.size,
        max_overflow=pool.max_overflow,
    )

    _engine = create_async_engine(
        str(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=pool.size,
        max_overflow=pool.max_overflow,
        pool_recycle=pool.recycle_seconds,
    )
    _async_session_factory = async_sessionmaker(
        _engine, expire_on_commit=False, autoflush=False
    )

    async with _engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


async def close_db() -> None:
    """Dispose of the pool. Safe to call when ``init_db`` never ran."""
    global _engine, _async_session_factory  # noqa: PLW0603
    if _engine is None:
        return
    logger.info("Closing database connection pool")
    await _engine.dispose()
    _engine = None
    _async_session_factory = None


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Session for code outside a request (startup, background refresher)."""
    async with _require_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    async with get_db_session() as session:
        yield session


async def get_db_health() -> bool:
    """True if a connection can be checked out and answers ``SELECT 1``."""
    if _engine is None:
        return False
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed", error=str(e))
        return False
    return True
