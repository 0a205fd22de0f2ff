"""Configuration schema for tickle schedulers.

:class:`TickleConfig` holds the knobs that affect a single scheduler instance
and is passed at construction time.  The remaining dataclasses describe the
YAML job file consumed by the command line runner, where several schedulers
are started side by side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

DEFAULT_MIN_INTERVAL = timedelta(seconds=10)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TickleConfig:
    """Per-instance scheduler settings.

    ``min_duration_override`` disables the interval floor, which is mostly
    useful for tests and demos.  ``clock`` must return an aware datetime; the
    scheduler only uses it for observational timestamps, window gates and
    aligned-start calculations, never for the loop period itself.
    """

    min_duration_override: bool = False
    min_interval: timedelta = DEFAULT_MIN_INTERVAL
    clock: Callable[[], datetime] = utc_now


@dataclass(slots=True)
class JobConfig:
    """One scheduled job in a job file."""

    name: str
    kind: str
    interval: timedelta
    start_hour: Optional[int] = None
    start_minute: Optional[int] = None
    timezone: Optional[str] = None
    max_runs: int = 0
    max_failures: int = 0
    window_open: Optional[datetime] = None
    window_close: Optional[datetime] = None
    url: Optional[str] = None
    request_timeout: float = 5.0

    @property
    def aligned(self) -> bool:
        return self.start_hour is not None or self.start_minute is not None


@dataclass(slots=True)
class TickleFileConfig:
    """Top-level configuration bundle for the command line runner."""

    jobs: Sequence[JobConfig] = field(default_factory=tuple)
    min_duration_override: bool = False
    log_level: str = "INFO"

    def scheduler_config(self) -> TickleConfig:
        return TickleConfig(min_duration_override=self.min_duration_override)
