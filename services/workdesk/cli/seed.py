"""
Seed script for the default system roles and an optional admin user.

Idempotent: default roles are upserted, an existing admin user is only
granted the admin role if it lacks it.
Run via: python -m workdesk.cli.seed

Reads configuration from environment variables:
  WORKDESK_BOOTSTRAP_ADMIN_USERNAME - Admin username (optional; no user is created if omitted)
  WORKDESK_BOOTSTRAP_ADMIN_PASSWORD - Admin password (optional; generated if omitted)
  WORKDESK_BOOTSTRAP_ADMIN_EMAIL    - Admin email (optional; defaults to <username>@localhost)
  DATABASE_URL                      - PostgreSQL connection URL (falls back to WORKDESK_DATABASE_URL)
"""

import asyncio
import logging
import os
import secrets
import sys

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from workdesk.auth.passwords import hash_password
from workdesk.db.models import User
from workdesk.services.role_store import seed_default_roles

# Use stdlib logging - structlog isn't configured yet during seeding
logger = logging.getLogger("workdesk.seed")
logging.basicConfig(level=logging.INFO, format="%(message)s")

ADMIN_ROLE = "admin"


def _database_url() -> str:
    database_url = (
        os.environ.get("DATABASE_URL", "").strip()
        or os.environ.get("WORKDESK_DATABASE_URL", "").strip()
    )
    # Ensure async driver
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


async def ensure_admin_user(
    session: AsyncSession,
    username: str,
    password: str | None,
    email: str | None = None,
) -> User:
    """Create the admin user, or grant ``admin`` to an existing one."""
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()

    if user is not None:
        if ADMIN_ROLE in (user.roles or []):
            logger.info("User %s already holds the admin role, skipping", username)
        else:
            user.roles = [*(user.roles or []), ADMIN_ROLE]
            logger.info("Granted admin role to existing user %s", username)
        return user

    generated = False
    if not password:
        password = secrets.token_urlsafe(24)
        generated = True

    user = User(
        username=username,
        name="Administrator",
        email=email or f"{username}@localhost",
        password_hash=hash_password(password),
        roles=[ADMIN_ROLE],
        is_active=True,
    )
    session.add(user)
    logger.info("Created user: %s", username)
    if generated:
        logger.info("Generated password: %s", password)
        logger.warning("IMPORTANT: Save this password now. It will not be shown again.")
    return user


async def seed() -> None:
    admin_username = os.environ.get("WORKDESK_BOOTSTRAP_ADMIN_USERNAME", "").strip()
    admin_password = os.environ.get("WORKDESK_BOOTSTRAP_ADMIN_PASSWORD", "").strip()
    admin_email = os.environ.get("WORKDESK_BOOTSTRAP_ADMIN_EMAIL", "").strip()
    database_url = _database_url()

    if not database_url:
        logger.error("DATABASE_URL is required")
        sys.exit(1)

    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("Connected to database")

    async with AsyncSession(engine, expire_on_commit=False) as session:
        outcome = await seed_default_roles(session)
        logger.info(
            "Default roles: %d created, %d updated, %d unchanged",
            len(outcome.created),
            len(outcome.updated),
            len(outcome.unchanged),
        )

        if admin_username:
            await ensure_admin_user(session, admin_username, admin_password, admin_email)
            await session.commit()
        else:
            logger.info("WORKDESK_BOOTSTRAP_ADMIN_USERNAME not set, skipping admin user")

    await engine.dispose()
    logger.info("Seed complete")


if __name__ == "__main__":
    asyncio.run(seed())
