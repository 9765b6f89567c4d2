"""
Structured logging via structlog on top of the stdlib logging tree.

Each entry carries timestamp, level, severity, logger name, the dotted event
name, and whatever request context the access-log middleware bound
(request_id, method, path).

Usage:
    logger = get_logger(__name__)
    logger.info("report.created", report_id=report.id, tenant_id=report.tenant_id)
    logger.warning("auth.token_invalid", error=str(e))
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from housing_api.core.config import settings

_SEVERITY = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "exception": "ERROR",
    "critical": "CRITICAL",
}


def add_severity_field(
    logger: WrappedLogger, method: str, event_dict: EventDict
) -> EventDict:
    """Severity key understood by Cloud Logging (Firebase projects ship logs there)."""
    event_dict["severity"] = _SEVERITY.get(method, "INFO")
    return event_dict


def setup_logging() -> None:
    """Route structlog through stdlib logging, rendering JSON or coloured console lines."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_severity_field,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.LOG_FORMAT == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "google.auth", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_request_context(**values: Any) -> None:
    """Attach values to every log entry emitted while handling the current request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
