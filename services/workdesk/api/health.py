"""
Health check endpoints for the Workdesk API server.

Provides /health (liveness) and /ready (readiness) endpoints.
"""

from fastapi import APIRouter, Response, status

from workdesk.db.session import get_db_health
from workdesk.logging_config import get_logger
from workdesk.services.permission_cache import permission_cache

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    """Liveness probe endpoint.

    Returns 200 if the API server is running.
    """
    return {"status": "healthy"}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def ready(response: Response) -> dict[str, str | dict[str, str]]:
    """Readiness probe endpoint.

    The database must answer and the permission cache must have been loaded
    at least once. A stale cache still serves requests, so it only shows up
    as "stale".
    """
    checks: dict[str, str] = {}

    checks["database"] = "healthy" if await get_db_health() else "unhealthy"

    snapshot = permission_cache.snapshot()
    if snapshot.version == 0:
        checks["permissions"] = "unhealthy"
    elif permission_cache.is_stale:
        checks["permissions"] = "stale"
    else:
        checks["permissions"] = "healthy"

    all_healthy = all(v in ("healthy", "stale") for v in checks.values())

    if not all_healthy:
        logger.warning("Readiness check failed", checks=checks)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready", "checks": checks}

    return {"status": "ready", "checks": checks}
