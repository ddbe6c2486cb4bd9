"""Structured logging configuration using structlog."""

import logging
import sys
from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4

import structlog

from crm.config import get_settings

# Context variable for request correlation ID
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def add_request_id(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add request ID to log entries if available."""
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def stringify_ids(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Render UUID values (and lists of them) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, UUID):
            event_dict[key] = str(value)
        elif isinstance(value, list | tuple | set | frozenset) and any(
            isinstance(v, UUID) for v in value
        ):
            event_dict[key] = sorted(str(v) for v in value)
    return event_dict


def configure_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level, logging.INFO)

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_request_id,
        stringify_ids,
    ]

    if settings.environment == "development":
        # Human-readable console output for development
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # JSON output for production/staging (log aggregation friendly)
        shared_processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    # SQL echo is controlled by settings.debug on the engine itself
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_actor_context(team_id: UUID | None, user_id: UUID | None) -> None:
    """Attach the acting team/user to every log line of the current request."""
    structlog.contextvars.bind_contextvars(
        team_id=str(team_id) if team_id else None,
        user_id=str(user_id) if user_id else None,
    )


def generate_request_id() -> str:
    """Generate a new request correlation ID."""
    return str(uuid4())[:8]
