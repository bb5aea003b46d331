"""Structured logging for protected executions.

Components log named events (``circuit_breaker.opened``,
``file_retry.waiting`` ...) with keyword fields through the ``log_*``
helpers, which accept structlog loggers and plain stdlib loggers alike.
Hosts call ``configure_logging`` once, with the level taken from
``ResilienceSettings``. The registry binds the running operation name into
the structlog context, so events logged inside a work action carry it too.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Literal, Protocol, TextIO

import structlog

if TYPE_CHECKING:
    from resilient_ops.settings import ResilienceSettings

LogLevel = Literal["debug", "info", "warning", "error"]

_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class StructuredLogger(Protocol):
    """Logger accepting an event name plus keyword fields."""

    def debug(self, event: str, **kwargs: object) -> None: ...

    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...


AnyLogger = StructuredLogger | logging.Logger | logging.LoggerAdapter[logging.Logger]


def get_log_level_value(level: str) -> int:
    """Return the stdlib level number for a level name such as ``" info "``."""
    normalized = level.strip().upper()
    if normalized not in _LEVEL_NAMES:
        raise ValueError(f"log_level must be one of: {', '.join(sorted(_LEVEL_NAMES))}")
    return logging.getLevelNamesMapping()[normalized]


def _emit(logger: AnyLogger, level: LogLevel, event: str, fields: dict) -> None:
    method = getattr(logger, level)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        # stdlib loggers only take structured fields through ``extra``.
        method(event, extra=fields)
    else:
        method(event, **fields)


def log_debug(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "debug", event, fields)


def log_info(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "info", event, fields)


def log_warning(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "warning", event, fields)


def log_error(logger: AnyLogger, event: str, **fields: object) -> None:
    _emit(logger, "error", event, fields)


def configure_logging(
    settings: ResilienceSettings | None = None,
    *,
    stream: TextIO | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog and stdlib logging to one handler at the configured level.

    Output is JSON unless ``stream`` is a terminal, in which case the console
    renderer is used. Calling this again replaces the previous configuration.

    Args:
        settings: Source of ``log_level``. Defaults to ``INFO``.
        stream: Destination stream. Defaults to ``sys.stderr``.

    Returns:
        The package logger, ready for use by the host script.
    """
    level = get_log_level_value("INFO" if settings is None else settings.log_level)
    target = sys.stderr if stream is None else stream
    if target.isatty():
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    handler = logging.StreamHandler(target)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_log_level,
                timestamper,
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    logging.basicConfig(
        format="%(message)s", handlers=[handler], level=level, force=True
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger("resilient_ops")
