"""
FastAPI application factory for the Workdesk API server.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from workdesk.config import check_startup_settings, settings
from workdesk.db.session import close_db, get_db_session, init_db
from workdesk.errors import WorkdeskError
from workdesk.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from workdesk.services.permission_cache import permission_cache, run_refresher

from .health import router as health_router

logger = get_logger(__name__)

_HTTP_ERROR_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def _error_body(code: str, message: str, status_code: int) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, "statusCode": status_code},
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    logger.info("Starting Workdesk API server", version="0.1.0")
    check_startup_settings(settings)

    await init_db()
    logger.info("Database initialized")

    async with get_db_session() as db:
        if await permission_cache.invalidate(db):
            logger.info(
                "Permission cache loaded",
                roles=len(permission_cache.snapshot().role_codes),
            )
        else:
            logger.warning("Permission cache not loaded, refresher will retry")

    refresher_task = None
    if settings.permissions.refresh_interval_seconds > 0:
        refresher_task = asyncio.create_task(
            run_refresher(settings.permissions.refresh_interval_seconds)
        )
        logger.info(
            "Permission refresher started",
            interval_seconds=settings.permissions.refresh_interval_seconds,
        )

    yield

    if refresher_task is not None:
        refresher_task.cancel()
        try:
            await refresher_task
        except asyncio.CancelledError:
            pass
        logger.info("Permission refresher stopped")

    # Shutdown
    logger.info("Shutting down Workdesk API server")
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Workdesk API",
        description="Workdesk - role and permission administration",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware
    if settings.cors.allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors.allow_origins,
            allow_credentials=settings.cors.allow_credentials,
            allow_methods=settings.cors.allow_methods,
            allow_headers=settings.cors.allow_headers,
        )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        bind_request_context(
            request_id=request_id,
            permissions_version=permission_cache.snapshot().version,
        )

        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id

        return response

    @app.exception_handler(WorkdeskError)
    async def workdesk_error_handler(request: Request, exc: WorkdeskError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed", code=exc.code, path=str(request.url.path))
        else:
            logger.info(
                "Request rejected",
                code=exc.code,
                status_code=exc.status_code,
                path=str(request.url.path),
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid')}"
            for e in errors
        ) or "Invalid request"
        return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", message, 400))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, str(exc.detail), exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "Internal server error", 500),
        )

    # Health endpoints (no prefix)
    app.include_router(health_router)

    # Login and current-user routes
    from workdesk.api.routers.auth import router as auth_router

    app.include_router(auth_router, prefix=settings.api_prefix)

    # Role administration
    from workdesk.api.routers.roles import router as roles_router

    app.include_router(roles_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_app()
