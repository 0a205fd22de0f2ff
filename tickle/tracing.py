"""Logger and tracer hooks used around every task run."""
from __future__ import annotations

import logging
import time
from typing import Any, Protocol

DEFAULT_LOGGER_NAME = "tickle"


class Logger(Protocol):
    """Diagnostic sink; any :class:`logging.Logger` satisfies it."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


class Tracer(Protocol):
    """Instrumentation wrapped around each task invocation.

    ``parent`` is whatever the caller put on :attr:`Tickle.parent`, such as a
    Sentry transaction or an OpenTelemetry context, so spans can be nested
    under it.  ``on_task_start`` returns an opaque token that is handed back to
    ``on_task_stop`` once the run finishes, whatever its outcome.  Tracers that
    integrate with other libraries (Sentry transactions, OpenTelemetry spans)
    return their span object as the token.
    """

    def on_task_start(
        self, log: Logger, operation: str, task_name: str, parent: Any = None
    ) -> Any: ...

    def on_task_stop(self, token: Any, log: Logger, task_name: str) -> None: ...


class LoggingTracer:
    """Default tracer: logs the start of a run and its elapsed time."""

    def on_task_start(
        self, log: Logger, operation: str, task_name: str, parent: Any = None
    ) -> float:
        log.info("tickle task start (%s)", task_name)
        return time.monotonic()

    def on_task_stop(self, token: float, log: Logger, task_name: str) -> None:
        # monotonic so the duration ignores wall clock adjustments
        elapsed = time.monotonic() - token
        log.info("tickle task end (%s): duration %.6fs", task_name, elapsed)


def default_logger() -> logging.Logger:
    return logging.getLogger(DEFAULT_LOGGER_NAME)
