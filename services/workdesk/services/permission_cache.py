"""In-memory permission cache.

The cache holds one immutable ``PermissionSnapshot`` built from the active
rows of the roles table. A rebuild constructs a complete new snapshot and
then swaps the reference in a single assignment, so a reader that grabbed a
snapshot sees either the old maps or the new maps, never a mix.

Readers never await. The only writers are ``rebuild``/``invalidate`` (called
by every role store mutation) and the background refresher, which picks up
changes made outside the API (e.g. the seed command).

If the store cannot be read, the previous snapshot stays in place and the
cache is marked stale until a later rebuild succeeds.
"""

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.auth.permissions import PermissionValue, normalize_value
from workdesk.db.models import Role, utc_now
from workdesk.logging_config import get_logger

logger = get_logger(__name__)


class RoleRecord(Protocol):
    code: str
    name: str
    priority: int
    permissions: Mapping[str, Any]


_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class PermissionSnapshot:
    """Read-only view of every active role's permissions, priority and name."""

    permissions_by_role: Mapping[str, Mapping[str, PermissionValue]] = field(
        default_factory=lambda: _EMPTY
    )
    priority_by_role: Mapping[str, int] = field(default_factory=lambda: _EMPTY)
    name_by_role: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    version: int = 0
    loaded_at: datetime | None = None

    @classmethod
    def from_roles(
        cls,
        roles: Iterable[RoleRecord],
        version: int = 0,
        loaded_at: datetime | None = None,
    ) -> "PermissionSnapshot":
        """Build a snapshot. Roles with ``is_active`` false are skipped."""
        permissions: dict[str, Mapping[str, PermissionValue]] = {}
        priority: dict[str, int] = {}
        names: dict[str, str] = {}

        for role in roles:
            if not getattr(role, "is_active", True):
                continue
            perms = {key: normalize_value(value) for key, value in (role.permissions or {}).items()}
            permissions[role.code] = MappingProxyType(perms)
            priority[role.code] = int(role.priority or 0)
            names[role.code] = role.name

        return cls(
            permissions_by_role=MappingProxyType(permissions),
            priority_by_role=MappingProxyType(priority),
            name_by_role=MappingProxyType(names),
            version=version,
            loaded_at=loaded_at,
        )

    @property
    def role_codes(self) -> frozenset[str]:
        return frozenset(self.permissions_by_role)


class PermissionCache:
    """Process-wide holder of the current ``PermissionSnapshot``."""

    def __init__(self) -> None:
        self._snapshot = PermissionSnapshot()
        self._stale = True
        self._version = 0
        self._loaded_monotonic: float | None = None
        # Serializes rebuilds so snapshots are installed in the order they were read
        self._rebuild_lock = asyncio.Lock()

    def snapshot(self) -> PermissionSnapshot:
        """Return the current snapshot. Never suspends."""
        return self._snapshot

    @property
    def is_stale(self) -> bool:
        """True until the first successful load, and after a failed rebuild."""
        return self._stale

    @property
    def age_seconds(self) -> float | None:
        if self._loaded_monotonic is None:
            return None
        return time.monotonic() - self._loaded_monotonic

    def load(self, roles: Iterable[RoleRecord]) -> PermissionSnapshot:
        """Replace the snapshot with one built from ``roles``."""
        snapshot = PermissionSnapshot.from_roles(
            roles, version=self._version + 1, loaded_at=utc_now()
        )
        # Single reference swap; readers holding the old snapshot are unaffected.
        self._snapshot = snapshot
        self._version = snapshot.version
        self._stale = False
        self._loaded_monotonic = time.monotonic()
        return snapshot

    async def rebuild(self, db: AsyncSession) -> PermissionSnapshot:
        """Reload active roles from the store and swap in a new snapshot.

        Rebuilds never overlap: a read that started earlier cannot be
        installed over one that started later. Readers are not blocked.
        Raises on store errors; the current snapshot is left untouched.
        """
        async with self._rebuild_lock:
            result = await db.execute(
                select(Role)
                .where(Role.is_active.is_(True))
                .order_by(Role.priority.desc(), Role.seq)
            )
            roles = list(result.scalars().all())
            snapshot = self.load(roles)
        logger.debug("Permission cache rebuilt", version=snapshot.version, roles=len(roles))
        return snapshot

    async def invalidate(self, db: AsyncSession) -> bool:
        """Rebuild after a store mutation.

        Returns False (and keeps the previous snapshot) if the store could not
        be read; the background refresher retries later.
        """
        try:
            await self.rebuild(db)
        except (SQLAlchemyError, OSError) as e:
            self._stale = True
            logger.warning(
                "Permission cache rebuild failed, keeping previous snapshot",
                version=self._snapshot.version,
                error=str(e),
            )
            return False
        return True

    def reset(self) -> None:
        """Drop back to an empty snapshot."""
        self._snapshot = PermissionSnapshot()
        self._stale = True
        self._loaded_monotonic = None
        self._rebuild_lock = asyncio.Lock()


permission_cache = PermissionCache()


async def run_refresher(interval_seconds: int) -> None:
    """Reload the permission cache every ``interval_seconds``.

    Runs as a background task started in the application lifespan.
    """
    from workdesk.db.session import get_db_session

    logger.info("Permission cache refresher started", interval_seconds=interval_seconds)

    while True:
        try:
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Permission cache refresher stopping")
            return

        try:
            async with get_db_session() as db:
                await permission_cache.invalidate(db)
        except (SQLAlchemyError, OSError, RuntimeError) as e:
            logger.error("Permission cache refresh failed", error=str(e))
