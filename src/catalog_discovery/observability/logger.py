"""Structured logging for observability.

Every line is a JSON object carrying the event name, level, timestamp, the
service name and whatever crawl context (domain, category) is bound to the
current task.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from ..config.settings import get_settings


def _service_stamp(service_name: str) -> Processor:
    def add_service(logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service


def configure_logging(*, stream=None) -> None:
    """Configure structured JSON logging.

    Logs go to stderr by default so the CLI can keep stdout for results.
    """
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _service_stamp(settings.service_name),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_crawl_context(**values) -> None:
    """Attach crawl-scoped fields (domain, category) to every log line in this task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_crawl_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
