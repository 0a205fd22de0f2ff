"""Wall-clock alignment for the first trigger of a scheduler."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from tzlocal import get_localzone

from tickle.errors import InvalidHourError, InvalidMinuteError, UnknownConditionError

ANY = -1


def local_timezone() -> tzinfo:
    """Return the process's local zone with its DST rules, not a fixed offset."""

    return get_localzone()


def validate_start(hour: int, minute: int) -> None:
    """Raise when ``hour``/``minute`` fall outside ``-1..23`` / ``-1..59``."""

    if hour < ANY or hour > 23:
        raise InvalidHourError(hour)
    if minute < ANY or minute > 59:
        raise InvalidMinuteError(minute)


def compute_aligned_start(now: datetime, hour: int, minute: int, location: tzinfo) -> datetime:
    """Return the next instant matching ``hour:minute`` in ``location``.

    ``-1`` means "unspecified":

    * ``hour == -1 and minute == -1``: start of the next whole minute strictly
      after ``now``.
    * ``hour == -1 and minute >= 0``: the next ``:minute`` of the current or
      following hour.
    * ``hour >= 0``: today at ``hour:minute`` (minute defaults to ``0``), or
      tomorrow when that moment has already passed.

    ``now`` must be timezone aware.  The result is expressed in ``location``.
    """

    local = now.astimezone(location)

    if hour == ANY and minute == ANY:
        return _shift(local.replace(second=0, microsecond=0), timedelta(minutes=1), location)

    if hour == ANY and minute >= 0:
        target = local.replace(minute=minute, second=0, microsecond=0)
        if local > target:
            target = _shift(target, timedelta(hours=1), location)
        return target

    if hour >= 0:
        target = local.replace(hour=hour, minute=max(minute, 0), second=0, microsecond=0)
        if local > target:
            # wall-clock day, so 19:00 stays 19:00 across a DST change
            target += timedelta(days=1)
        return target

    raise UnknownConditionError(hour, minute)


def _shift(moment: datetime, delta: timedelta, location: tzinfo) -> datetime:
    # elapsed time, so the repeated fall-back hour and the spring-forward gap are honoured
    return (moment.astimezone(timezone.utc) + delta).astimezone(location)
