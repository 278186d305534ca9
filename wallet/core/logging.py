"""Logging configuration and utilities."""

import logging
import sys
from typing import Any

import structlog
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter, add_logger_name, filter_by_level

from wallet.core.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structured logging.

    structlog events and plain stdlib records (``logging.getLogger(__name__)``
    with ``extra=``) go through one handler and one renderer.
    """
    level = settings.app.log_level
    log_level = str(getattr(level, "value", level)).upper()

    shared_processors: list[Any] = [
        add_log_level,
        add_logger_name,
        TimeStamper(fmt="iso", utc=True),
    ]

    if settings.observability.log_record_format == "json":
        renderer: Any = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=[*shared_processors, structlog.stdlib.ExtraAdder()],
            processors=[
                ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)


class LoggerMixin:
    """Mixin providing logger access."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger for this instance."""
        return get_logger(self.__class__.__module__)
