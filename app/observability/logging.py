"""
Structured Logging - structlog configuration for the generation API.

Every event is a snake_case name plus keyword fields. Fields that can carry
credentials or image payloads are masked before rendering, and request-scoped
fields (request_id, user_id) are bound through contextvars so every step of a
pipeline run logs them without passing them around.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

# Field names whose values are never written to logs
SENSITIVE_FIELDS = frozenset(
    {"authorization", "token", "access_token", "api_key", "secret", "password"}
)
# Inline uploads arrive as data URIs of several megabytes
MAX_FIELD_LENGTH = 512


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp service name and version on every event."""
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("version", settings.api_version)
    return event_dict


def mask_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace credentials and shorten oversized string fields."""
    for key, value in event_dict.items():
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = "***"
        elif isinstance(value, str) and key != "event":
            if value.startswith("data:"):
                event_dict[key] = f"<data uri, {len(value)} chars>"
            elif len(value) > MAX_FIELD_LENGTH:
                event_dict[key] = value[:MAX_FIELD_LENGTH] + "...(truncated)"
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog on top of the stdlib root logger.

    LOG_FORMAT=json renders one JSON object per line:
        {"event": "credits_reserved", "level": "info", "logger": "app.services.ledger",
         "timestamp": "...", "service": "room-redesign-api", "request_id": "...", ...}
    LOG_FORMAT=console renders colored key=value lines for local runs.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        mask_sensitive_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Module logger: `logger = get_logger(__name__)`."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """
    Bind fields to every event logged inside the block.

    Previous values of the same keys are restored on exit, so nested
    contexts (a poll inside a request) do not clobber each other.
    """
    with structlog.contextvars.bound_contextvars(**fields):
        yield
