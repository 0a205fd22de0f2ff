"""Tickle: run one task on a fixed interval, safely."""

from .alignment import compute_aligned_start
from .config import TickleConfig
from .errors import (
    ConfigError,
    InvalidDurationError,
    InvalidHourError,
    InvalidMinuteError,
    InvalidMonthError,
    NilTaskError,
    SchedulerStateError,
    TickleError,
    UnknownConditionError,
)
from .scheduler import Clean, Recovery, Task, Tickle, TickleState, new
from .tracing import Logger, LoggingTracer, Tracer

__version__ = "1.2.1"

__all__ = [
    "Clean",
    "ConfigError",
    "InvalidDurationError",
    "InvalidHourError",
    "InvalidMinuteError",
    "InvalidMonthError",
    "Logger",
    "LoggingTracer",
    "NilTaskError",
    "Recovery",
    "SchedulerStateError",
    "Task",
    "Tickle",
    "TickleConfig",
    "TickleError",
    "TickleState",
    "Tracer",
    "UnknownConditionError",
    "compute_aligned_start",
    "new",
]
