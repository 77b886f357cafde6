"""Structured event logging for router modules.

Every router module logs through a structlog logger named under
``origin_router``. ``RouterSettings.log_level`` is applied to that stdlib
logger when the router starts, which filters router events once structlog
routes through the standard library (``configure_structlog`` sets that up
for applications that have no structlog configuration of their own).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import Protocol

import structlog

LOGGER_NAMESPACE = "origin_router"

_LEVEL_NAMES = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")


class EventLogger(Protocol):
    def info(self, event: str, **kwargs: object) -> None: ...

    def warning(self, event: str, **kwargs: object) -> None: ...

    def error(self, event: str, **kwargs: object) -> None: ...


def get_logger(name: str) -> EventLogger:
    return structlog.stdlib.get_logger(name)


def get_log_level_value(level: str) -> int:
    """Map a level name such as ``"info"`` to its stdlib constant."""
    normalized = level.strip().upper()
    if normalized not in _LEVEL_NAMES:
        raise ValueError(f"log_level must be one of: {', '.join(_LEVEL_NAMES)}")
    return logging.getLevelNamesMapping()[normalized]


def apply_log_level(level: str) -> None:
    logging.getLogger(LOGGER_NAMESPACE).setLevel(get_log_level_value(level))


def log_info(logger: EventLogger, event: str, **fields: object) -> None:
    logger.info(event, **fields)


def log_warning(logger: EventLogger, event: str, **fields: object) -> None:
    logger.warning(event, **fields)


def log_error(logger: EventLogger, event: str, **fields: object) -> None:
    logger.error(event, **fields)


def configure_structlog(
    *,
    log_level: str = "INFO",
    json_output: bool | None = None,
    extra_processors: Sequence[structlog.types.Processor] = (),
) -> None:
    """Render router events on stderr through stdlib logging.

    Replaces the handlers of the ``origin_router`` logger with one stderr
    handler and stops propagation to the root logger, so calling this again
    never duplicates output. structlog itself is configured globally.

    Args:
        log_level: Level for the ``origin_router`` logger.
        json_output: Render JSON lines. Defaults to JSON unless stderr is a
            terminal, where the console renderer is used.
        extra_processors: Processors run right after context variables are
            merged, for both structlog and plain stdlib records.
    """
    if json_output is None:
        json_output = not sys.stderr.isatty()
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        *extra_processors,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.handlers = [handler]
    namespace.propagate = False
    apply_log_level(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
