"""Single-task recurring scheduler."""
from __future__ import annotations

import enum
import threading
import time
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Optional, Tuple, Union

from tickle.alignment import compute_aligned_start, local_timezone, validate_start
from tickle.config import TickleConfig
from tickle.errors import (
    InvalidDurationError,
    InvalidMonthError,
    NilTaskError,
    SchedulerStateError,
)
from tickle.tracing import Logger, LoggingTracer, Tracer, default_logger

# A task returns the number of items it touched (or any other result) and the
# error it ran into, if any.  Raising is reserved for real faults.
Task = Callable[[], Tuple[Any, Optional[Exception]]]
Clean = Callable[[Any, Exception], None]
Recovery = Callable[[Exception], None]
Interval = Union[int, float, timedelta]


class TickleState(enum.Enum):
    IDLE = "idle"
    AWAITING_ALIGNED_START = "awaiting_aligned_start"
    RUNNING = "running"


def _as_timedelta(interval: Interval) -> timedelta:
    if isinstance(interval, timedelta):
        return interval
    return timedelta(seconds=float(interval))


def _aware(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    if moment.tzinfo is not None:
        return moment
    if tz is not None:
        return moment.replace(tzinfo=tz)
    return moment.replace(tzinfo=local_timezone())


class Tickle:
    """Run ``task`` every ``interval`` on a background thread.

    Failures never leave the scheduler.  A task that returns an error is
    counted as failed and handed to ``on_failure``; a task that raises is
    counted as failed and handed to ``on_panic_recovered``.  Runs of one
    scheduler never overlap, and each run is bracketed by the ``tracer`` hooks.

    ``last_tick``, ``next_tick`` and ``started_at`` are observational only;
    changing them has no effect on when the task actually runs.
    """

    def __init__(
        self,
        name: str,
        interval: Interval,
        task: Optional[Task],
        config: Optional[TickleConfig] = None,
    ) -> None:
        self._config = config or TickleConfig()
        if task is None:
            raise NilTaskError(name)
        self._interval = self._validate_interval(interval)

        self.name = name
        self.task: Optional[Task] = task
        self.on_failure: Optional[Clean] = None
        self.on_panic_recovered: Optional[Recovery] = None

        self.run_count = 0
        self.fail_count = 0
        self.success_count = 0

        self.last_error: Optional[Exception] = None
        self.last_tick: Optional[datetime] = None
        self.next_tick: Optional[datetime] = None
        self.started_at: Optional[datetime] = None

        # allowed to run inside [open, close], inclusive
        self._time_range_open: Optional[datetime] = None
        self._time_range_close: Optional[datetime] = None

        # 0 disables; runs are skipped once a counter goes past its ceiling
        self.max_runs = 0
        self.max_failures = 0

        self.log: Logger = default_logger()
        self.tracer: Tracer = LoggingTracer()
        # handed to the tracer, e.g. a Sentry transaction or an OpenTelemetry context
        self.parent: Any = None

        self._state = TickleState.IDLE
        self._lock = threading.RLock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[threading.Timer] = None

    # ------------------------------------------------------------------
    # Observable state
    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def state(self) -> TickleState:
        return self._state

    @property
    def config(self) -> TickleConfig:
        return self._config

    @property
    def time_range_open(self) -> Optional[datetime]:
        return self._time_range_open

    @time_range_open.setter
    def time_range_open(self, value: Optional[datetime]) -> None:
        self._time_range_open = _aware(value) if value is not None else None

    @property
    def time_range_close(self) -> Optional[datetime]:
        return self._time_range_close

    @time_range_close.setter
    def time_range_close(self, value: Optional[datetime]) -> None:
        self._time_range_close = _aware(value) if value is not None else None

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self) -> None:
        """Begin the periodic loop; the first run happens one interval from now."""

        with self._lock:
            if self._state is TickleState.RUNNING:
                raise SchedulerStateError(f"tickle ({self.name}) is already running")
            timer, self._timer = self._timer, None
            if timer is not None:
                timer.cancel()

        # an aligned run may already be in flight on the timer thread
        if timer is not None and timer is not threading.current_thread():
            timer.join()

        with self._lock:
            if self._state is TickleState.RUNNING:
                raise SchedulerStateError(f"tickle ({self.name}) is already running")
            self._logger().info("Start tickle (%s)", self.name)
            now = self._now()
            self.started_at = now
            self.next_tick = now + self._interval

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop,
                args=(stop_event, self._interval.total_seconds()),
                name=f"tickle-{self.name}",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self._state = TickleState.RUNNING
            thread.start()

    def stop(self) -> None:
        """Halt the loop or a pending aligned start.

        Waits for an in-flight run to finish unless called from within the
        task itself.  Counters are kept.
        """

        with self._lock:
            self._logger().info("Stop tickle (%s)", self.name)
            timer, thread, stop_event = self._timer, self._thread, self._stop_event
            self._timer = None
            self._thread = None
            self._stop_event = None
            self._state = TickleState.IDLE
            self.started_at = None
            self.next_tick = None
            if timer is not None:
                timer.cancel()
            if stop_event is not None:
                stop_event.set()

        current = threading.current_thread()
        for worker in (timer, thread):
            if worker is not None and worker is not current:
                worker.join()

    def set_interval(self, interval: Interval) -> None:
        """Change the period and restart the loop."""

        self._interval = self._validate_interval(interval)
        self.stop()
        self.start()

    def set_interval_at(self, interval: Interval, start_hour: int, start_minute: int) -> None:
        """Like :meth:`set_interval_at_timezone` using the local timezone."""

        self.set_interval_at_timezone(interval, start_hour, start_minute, local_timezone())

    def set_interval_at_timezone(
        self,
        interval: Interval,
        start_hour: int,
        start_minute: int,
        location: tzinfo,
    ) -> None:
        """Run once at the next ``start_hour:start_minute`` in ``location``, then every ``interval``.

        ``-1`` leaves the hour or minute unspecified; see
        :func:`tickle.alignment.compute_aligned_start`.  Any running loop or
        pending aligned start is stopped first.
        """

        value = self._validate_interval(interval)
        validate_start(start_hour, start_minute)

        self.stop()

        now = self._now()
        target = compute_aligned_start(now, start_hour, start_minute, location)
        delay = max(0.0, (target - now).total_seconds())

        with self._lock:
            self._interval = value
            self.started_at = target
            self.next_tick = target
            timer = threading.Timer(delay, self._aligned_start)
            timer.name = f"tickle-{self.name}-aligned"
            timer.daemon = True
            self._timer = timer
            self._state = TickleState.AWAITING_ALIGNED_START
            timer.start()

        self._logger().info(
            "Set tickle (%s). Starts at %s in %s (interval %s)",
            self.name,
            target.isoformat(),
            timedelta(seconds=delay),
            value,
        )

    def set_allowed_window(self, open_at: Optional[datetime], close_at: Optional[datetime]) -> None:
        """Only run between ``open_at`` and ``close_at``; ``None`` leaves a side open.

        Naive datetimes are taken as local time.  The loop keeps ticking
        outside the window, it just skips the runs.
        """

        self.time_range_open = open_at
        self.time_range_close = close_at
        self.stop()
        self.start()

    def set_time_open(
        self,
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        tz: Optional[tzinfo] = None,
    ) -> None:
        """Set when the task is allowed to run after."""

        opened = self._window_time(year, month, day, hour, minute, second, tz)
        self.set_allowed_window(opened, self.time_range_close)

    def set_time_close(
        self,
        year: int,
        month: int,
        day: int,
        hour: int = 0,
        minute: int = 0,
        second: int = 0,
        tz: Optional[tzinfo] = None,
    ) -> None:
        """Set when the task is allowed to run before."""

        closed = self._window_time(year, month, day, hour, minute, second, tz)
        self.set_allowed_window(self.time_range_open, closed)

    def counter_reset(self) -> None:
        self.run_count = 0
        self.fail_count = 0
        self.success_count = 0

    # ------------------------------------------------------------------
    # Run pipeline
    def task_run(self) -> None:
        """Execute the task once, unless a window or ceiling gate skips it."""

        now = self._now()
        if self.time_range_open is not None and now < self.time_range_open:
            return
        if self.time_range_close is not None and now > self.time_range_close:
            return
        if self.max_runs > 0 and self.run_count > self.max_runs:
            return
        # cumulative, not a streak: successes in between do not reopen the gate
        if self.max_failures > 0 and self.fail_count > self.max_failures:
            return

        if self.log is None:
            self.log = default_logger()
        if self.tracer is None:
            self.tracer = LoggingTracer()

        self.last_tick = now
        self.next_tick = now + self._interval

        self._run_isolated()

    def _run_isolated(self) -> None:
        # last resort: a faulty recovery callback must not kill the loop thread
        try:
            self._run_recovering()
        except Exception as exc:
            self.last_error = exc
            self.log.error(
                "Tickle panic-panic recovered (%s): %s", self.name, exc, exc_info=exc
            )

    def _run_recovering(self) -> None:
        token = self.tracer.on_task_start(self.log, "tickle", self.name, parent=self.parent)
        try:
            try:
                self._invoke_task()
            except Exception as exc:
                self.last_error = exc
                self.log.error(
                    "Tickle task panicked (%s): %s", self.name, exc, exc_info=exc
                )
                if self.on_panic_recovered is not None:
                    self.on_panic_recovered(exc)
        finally:
            self.tracer.on_task_stop(token, self.log, self.name)

    def _invoke_task(self) -> None:
        if self.task is None:
            error = NilTaskError(self.name)
            self.log.error("Tickle task failed (%s): %s", self.name, error)
            self.last_error = error
            self.fail_count += 1
            self.run_count += 1
            return

        try:
            result, error = self.task()
        except Exception:
            self.fail_count += 1
            self.run_count += 1
            raise

        if error is not None:
            self.log.warning("Tickle task failed (%s): %s", self.name, error)
            self.last_error = error
            self.fail_count += 1
            self.run_count += 1
            if self.on_failure is not None:
                self.on_failure(result, error)
            return

        self.success_count += 1
        self.last_error = None
        self.run_count += 1

    # ------------------------------------------------------------------
    # Internals
    def _loop(self, stop_event: threading.Event, period: float) -> None:
        next_due = time.monotonic() + period
        pending = False
        while True:
            if pending:
                pending = False
                if stop_event.is_set():
                    break
            else:
                if stop_event.wait(max(0.0, next_due - time.monotonic())):
                    break
                next_due += period

            self._run_guarded()

            # a slow run coalesces every missed period into one immediate tick
            now = time.monotonic()
            if next_due <= now:
                pending = True
                next_due += (int((now - next_due) // period) + 1) * period

        self._logger().info("Tickle ticker done. (%s)", self.name)

    def _aligned_start(self) -> None:
        me = threading.current_thread()
        with self._lock:
            if self._timer is not me:
                return
        self._run_guarded()
        with self._lock:
            if self._timer is not me or self._state is not TickleState.AWAITING_ALIGNED_START:
                return
            self._timer = None
            self.start()

    def _run_guarded(self) -> None:
        # task_run contains task failures; this also covers the gates and the clock
        try:
            self.task_run()
        except Exception as exc:
            self.last_error = exc
            self._logger().error("Tickle run aborted (%s): %s", self.name, exc, exc_info=exc)

    def _validate_interval(self, interval: Interval) -> timedelta:
        value = _as_timedelta(interval)
        if value <= timedelta(0):
            raise InvalidDurationError(f"duration must be larger than 0 seconds: got {value}")
        floor = self._config.min_interval
        if not self._config.min_duration_override and value < floor:
            raise InvalidDurationError(
                f"duration must be {floor.total_seconds():g} seconds or above: got {value}"
            )
        return value

    def _window_time(
        self,
        year: int,
        month: int,
        day: int,
        hour: int,
        minute: int,
        second: int,
        tz: Optional[tzinfo],
    ) -> datetime:
        if month < 1 or month > 12:
            raise InvalidMonthError(month)
        return _aware(datetime(year, month, day, hour, minute, second), tz)

    def _logger(self) -> Logger:
        if self.log is None:
            self.log = default_logger()
        return self.log

    def _now(self) -> datetime:
        return self._config.clock()


def new(
    name: str,
    interval: Interval,
    task: Optional[Task],
    config: Optional[TickleConfig] = None,
) -> Tickle:
    """Create a :class:`Tickle`; ``name`` should be unique per process."""

    return Tickle(name, interval, task, config=config)
