"""
Structured logging for the order engine, built on structlog.

Log lines are an event name plus key/value context, e.g.

    logger.info("order_cancelled", order_id=str(order.id), previous_status="PENDING")

Trace and request ids are bound through contextvars (see app.core.tracing)
and merged into every line.
"""

import logging
import sys
from typing import Any

import orjson
import structlog
from structlog.types import EventDict, Processor

from app.core.config import settings

# Libraries whose own INFO output duplicates what the engine already logs
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx")


def add_service_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service_name", settings.SERVICE_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    event_dict.setdefault("version", settings.SERVICE_VERSION)
    return event_dict


def normalize_keys(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Upper-case ``level`` and move structlog's ``event`` to ``message``, the
    key the log pipeline indexes on. Uvicorn's ``color_message`` is dropped.
    """
    if method_name:
        event_dict["level"] = method_name.upper()
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    event_dict.pop("color_message", None)
    return event_dict


def _orjson_dumps(obj: Any, **kwargs: Any) -> str:
    # UUIDs, Decimals and enums fall back to str()
    return orjson.dumps(obj, default=str).decode("utf-8")


def _renderer() -> Processor:
    if settings.LOG_FORMAT == "console":
        return structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.JSONRenderer(serializer=_orjson_dumps)


def configure_logging() -> None:
    """Call once at startup. LOG_FORMAT=console for local runs, JSON otherwise."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_context,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            normalize_keys,
            _renderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
