"""Command line entry point to run scheduled jobs from a YAML file."""
from __future__ import annotations

import argparse
import json
import sys
import time
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .alignment import ANY, compute_aligned_start, local_timezone, validate_start
from .config import JobConfig, TickleConfig, utc_now
from .config_loader import load_config
from .errors import TickleError
from .logging import ContextTracer, configure_logging
from .scheduler import Tickle
from .tasks import HttpProbe, log_failure, log_recovery, make_http_probe, make_moo_task


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tickle recurring task runner")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser(
        "run",
        help="Start every job of a job file and report their counters on exit",
    )
    run.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML job file",
    )
    run.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    run.add_argument(
        "--log-level",
        default=None,
        help="Override the log level from the job file",
    )
    run.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    next_start = sub.add_parser(
        "next-start",
        help="Print when an aligned start would fire",
    )
    next_start.add_argument("--hour", type=int, default=ANY, help="0..23, or -1 for any")
    next_start.add_argument("--minute", type=int, default=ANY, help="0..59, or -1 for any")
    next_start.add_argument(
        "--timezone",
        default=None,
        help="IANA timezone name such as Australia/Sydney (default: local)",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return _command_run(args)
    if args.command == "next-start":
        return _command_next_start(args)

    parser.error("unknown command")
    return 1


def _command_run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Cannot load {args.config}: {exc}", file=sys.stderr)
        return 2

    configure_logging(args.log_level or config.log_level, json_output=args.json_logs or None)
    scheduler_config = config.scheduler_config()

    schedulers: List[Tickle] = []
    probes: List[HttpProbe] = []
    try:
        for job in config.jobs:
            tk = build_scheduler(job, scheduler_config, probes)
            schedulers.append(tk)
            _start_job(tk, job)
    except (TickleError, ZoneInfoNotFoundError, ValueError) as exc:
        print(f"Invalid job configuration: {exc}", file=sys.stderr)
        _shutdown(schedulers, probes)
        return 2

    try:
        end_time = time.monotonic() + args.duration if args.duration is not None else None
        while end_time is None or time.monotonic() < end_time:
            sleep_for = 1.0 if end_time is None else end_time - time.monotonic()
            time.sleep(max(0.0, min(1.0, sleep_for)))
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        print("Interrupted, stopping schedulers...", file=sys.stderr)
    finally:
        _shutdown(schedulers, probes)

    print(json.dumps([summarize(tk) for tk in schedulers], indent=2, ensure_ascii=False))
    return 0


def _command_next_start(args: argparse.Namespace) -> int:
    try:
        validate_start(args.hour, args.minute)
        location = _resolve_timezone(args.timezone)
    except (TickleError, ZoneInfoNotFoundError, ValueError) as exc:
        print(f"Invalid start: {exc}", file=sys.stderr)
        return 2

    target = compute_aligned_start(utc_now(), args.hour, args.minute, location)
    print(target.isoformat())
    return 0


def build_scheduler(job: JobConfig, config: TickleConfig, probes: List[HttpProbe]) -> Tickle:
    """Create (but do not start) the scheduler described by ``job``."""

    if job.kind == "http":
        probe = make_http_probe(job.url or "", request_timeout=job.request_timeout)
        probes.append(probe)
        task = probe
    else:
        task = make_moo_task()

    tk = Tickle(job.name, job.interval, task, config=config)
    tk.on_failure = log_failure
    tk.on_panic_recovered = log_recovery
    tk.tracer = ContextTracer()
    tk.max_runs = job.max_runs
    tk.max_failures = job.max_failures
    tk.time_range_open = job.window_open
    tk.time_range_close = job.window_close
    return tk


def summarize(tk: Tickle) -> Dict[str, Any]:
    return {
        "name": tk.name,
        "run_count": tk.run_count,
        "success_count": tk.success_count,
        "fail_count": tk.fail_count,
        "last_error": str(tk.last_error) if tk.last_error is not None else None,
        "last_tick": _isoformat(tk.last_tick),
    }


def _start_job(tk: Tickle, job: JobConfig) -> None:
    if not job.aligned:
        tk.start()
        return
    hour = job.start_hour if job.start_hour is not None else ANY
    minute = job.start_minute if job.start_minute is not None else ANY
    tk.set_interval_at_timezone(job.interval, hour, minute, _resolve_timezone(job.timezone))


def _resolve_timezone(name: Optional[str]) -> tzinfo:
    if name:
        return ZoneInfo(name)
    return local_timezone()


def _shutdown(schedulers: List[Tickle], probes: List[HttpProbe]) -> None:
    for tk in schedulers:
        tk.stop()
    for probe in probes:
        probe.close()


def _isoformat(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
