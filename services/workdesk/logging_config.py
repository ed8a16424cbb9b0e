"""
Structured logging for the Workdesk API server.

Every record, whether it comes from a structlog logger or from a stdlib one
(uvicorn, SQLAlchemy, asyncpg), is rendered by a single ProcessorFormatter
on the root handler: JSON lines in production, console output in development.

Per-request fields (request id, user, active role and the permission
snapshot version the request started with) are kept in structlog
contextvars and merged into every event logged while the request runs.
"""

import logging
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.types import EventDict, Processor

APP_NAME = "workdesk-api"

# Fields bound for the lifetime of one request
REQUEST_CONTEXT_KEYS = ("request_id", "user_id", "active_role", "permissions_version")

# Libraries that are chatty at INFO
NOISY_LOGGERS = (
    "asyncio",
    "asyncpg",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "uvicorn.access",
)

_LEADING_KEYS = ("level", "timestamp", "event")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def order_keys(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Put level, timestamp and event ahead of everything else."""
    ordered: EventDict = {key: event_dict.pop(key) for key in _LEADING_KEYS if key in event_dict}
    ordered.update(event_dict)
    return ordered


def utc_timestamper(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """ISO8601 UTC timestamp with millisecond precision and a Z suffix."""
    stamp = datetime.now(UTC).isoformat(timespec="milliseconds")
    event_dict["timestamp"] = stamp.replace("+00:00", "Z")
    return event_dict


def _renderers(json_logs: bool) -> list[Processor]:
    if json_logs:
        return [
            structlog.processors.dict_tracebacks,
            order_keys,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """Route structlog and stdlib logging through one formatter on stdout."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        utc_timestamper,
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(json_logs),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_request_context(**values: Any) -> None:
    """Bind per-request fields for every event logged until the request ends."""
    unknown = set(values) - set(REQUEST_CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"Not a request context field: {', '.join(sorted(unknown))}")
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars(*REQUEST_CONTEXT_KEYS)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
