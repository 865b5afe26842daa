"""Structured logging using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(
    *, debug: bool = False, json_output: bool = False, level: int | None = None,
) -> None:
    """Configure structlog and route stdlib loggers through it.

    Library modules log via ``logging.getLogger(__name__)``; this wires
    those records into the same renderer as structlog's own loggers.

    Args:
        debug: Enable DEBUG level logging.
        json_output: Use JSON output format instead of console.
        level: Explicit root level; overrides ``debug`` when given.
    """
    if level is None:
        level = logging.DEBUG if debug else logging.INFO

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    # watchdog's inotify emitter is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
