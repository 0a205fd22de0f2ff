"""Utilities to load :mod:`tickle.config` job files from YAML."""
from __future__ import annotations

import datetime as _dt
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .config import JobConfig, TickleFileConfig

_DURATION_UNITS = {
    "s": _dt.timedelta(seconds=1),
    "m": _dt.timedelta(minutes=1),
    "h": _dt.timedelta(hours=1),
    "d": _dt.timedelta(days=1),
}

JOB_KINDS = ("moo", "http")


def load_config(path: Path) -> TickleFileConfig:
    """Load a job file into :class:`TickleFileConfig`.

    Durations accept human friendly values such as ``"30s"`` or ``"5m"`` and
    window bounds accept ISO-8601 timestamps.  Fields omitted in the YAML file
    fall back to the defaults declared in :mod:`tickle.config`.
    """

    raw = _load_yaml(path)

    jobs = tuple(_parse_job(entry) for entry in raw.get("jobs", []) or [])
    names = [job.name for job in jobs]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"duplicate job names: {', '.join(duplicates)}")

    return TickleFileConfig(
        jobs=jobs,
        min_duration_override=bool(raw.get("min_duration_override", False)),
        log_level=str(raw.get("log_level", "INFO")),
    )


def _parse_job(entry: Mapping[str, Any]) -> JobConfig:
    if not isinstance(entry, Mapping):
        raise ValueError(f"job entry must be a mapping: {entry!r}")

    name = str(entry["name"])
    kind = str(entry.get("kind", "moo"))
    if kind not in JOB_KINDS:
        raise ValueError(f"unknown job kind for {name}: {kind}")
    if kind == "http" and not entry.get("url"):
        raise ValueError(f"http job {name} requires a url")

    return JobConfig(
        name=name,
        kind=kind,
        interval=_parse_duration(entry.get("interval", "10s")),
        start_hour=_optional_int(entry.get("start_hour")),
        start_minute=_optional_int(entry.get("start_minute")),
        timezone=str(entry["timezone"]) if entry.get("timezone") else None,
        max_runs=int(entry.get("max_runs", 0)),
        max_failures=int(entry.get("max_failures", 0)),
        window_open=_parse_timestamp(entry.get("window_open")),
        window_close=_parse_timestamp(entry.get("window_close")),
        url=str(entry["url"]) if entry.get("url") else None,
        request_timeout=float(entry.get("request_timeout", 5.0)),
    )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if not isinstance(data, Mapping):
        raise ValueError("configuration root must be a mapping")
    return data


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _parse_timestamp(value: Any) -> Optional[_dt.datetime]:
    if value is None:
        return None
    # PyYAML already turns unquoted timestamps into datetimes
    if isinstance(value, _dt.datetime):
        return value
    if isinstance(value, _dt.date):
        return _dt.datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ValueError(f"unsupported timestamp value: {value!r}")
    return _dt.datetime.fromisoformat(value.strip())


def _parse_duration(value: Any) -> _dt.timedelta:
    if isinstance(value, _dt.timedelta):
        return value
    if isinstance(value, (int, float)):
        return _dt.timedelta(seconds=float(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported duration value: {value!r}")
    value = value.strip()
    if value.isdigit():
        return _dt.timedelta(seconds=int(value))
    unit = value[-1].lower()
    if unit not in _DURATION_UNITS:
        raise ValueError(f"unknown duration unit: {value}")
    amount = float(value[:-1])
    base = _DURATION_UNITS[unit]
    return _dt.timedelta(seconds=base.total_seconds() * amount)
