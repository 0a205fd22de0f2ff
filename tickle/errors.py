"""Tickle exception hierarchy.

Configuration mistakes raise :class:`ConfigError` subclasses synchronously.
Failures inside a running task never surface as exceptions; they are recorded
on the scheduler instead.
"""
from __future__ import annotations


class TickleError(Exception):
    """Base exception for all tickle errors."""


class ConfigError(TickleError, ValueError):
    """Invalid scheduler configuration."""


class InvalidDurationError(ConfigError):
    """Interval is not positive or is below the configured floor."""

    def __init__(self, message: str = "duration must be 10 seconds or above") -> None:
        super().__init__(message)


class InvalidHourError(ConfigError):
    def __init__(self, hour: int) -> None:
        super().__init__(f"startHour must be range of -1..23: got {hour}")
        self.hour = hour


class InvalidMinuteError(ConfigError):
    def __init__(self, minute: int) -> None:
        super().__init__(f"startMinute must be range of -1..59: got {minute}")
        self.minute = minute


class InvalidMonthError(ConfigError):
    def __init__(self, month: int) -> None:
        super().__init__(f"wrong month number: got {month}")
        self.month = month


class UnknownConditionError(ConfigError):
    """Hour/minute combination that no alignment rule covers."""

    def __init__(self, hour: int, minute: int) -> None:
        super().__init__(f"unknown condition: hour={hour} minute={minute}")


class NilTaskError(TickleError, TypeError):
    """No task function was supplied."""

    def __init__(self, name: str = "") -> None:
        message = "tickle func is nil"
        if name:
            message = f"{message} ({name})"
        super().__init__(message)


class SchedulerStateError(TickleError, RuntimeError):
    """Lifecycle operation is not valid in the current state."""
