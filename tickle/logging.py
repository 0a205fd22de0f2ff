"""Logging configuration with structlog for the command line runner.

The library itself only ever logs through :mod:`logging`; this module wires
those records into structlog's renderers when tickle runs as a program.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any, List, Optional

import structlog

from tickle.tracing import Logger, LoggingTracer


def configure_logging(level: str = "INFO", json_output: Optional[bool] = None) -> None:
    """Configure root logging with a structlog formatter on stderr.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. If None, JSON when ``TICKLE_ENV=prod``.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_output is None:
        json_output = os.environ.get("TICKLE_ENV", "dev") == "prod"

    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final_processors: List[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_output:
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(renderer)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=final_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to the structlog context for the current thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class ContextTracer(LoggingTracer):
    """:class:`LoggingTracer` that tags every record of a run with its task name."""

    def on_task_start(
        self, log: Logger, operation: str, task_name: str, parent: Any = None
    ) -> float:
        bind_context(tickle_task=task_name, tickle_operation=operation)
        return super().on_task_start(log, operation, task_name, parent=parent)

    def on_task_stop(self, token: float, log: Logger, task_name: str) -> None:
        try:
            super().on_task_stop(token, log, task_name)
        finally:
            clear_context()
