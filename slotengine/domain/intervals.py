"""
Interval and timezone helpers.

All day-boundary math goes through IANA timezones on local wall-clock time.
Wall-clock values are converted to absolute UTC instants only at the edges,
and no UTC offset is ever cached for a future date.
"""

from datetime import datetime
from typing import Iterable, Iterator, List

import pendulum
from pendulum import Date, DateTime

MINUTES_PER_DAY = 24 * 60

UTC = "UTC"


def is_valid_timezone(name: str) -> bool:
    """Return True if ``name`` is a known IANA timezone."""
    if not name:
        return False
    try:
        pendulum.timezone(name)
    except (KeyError, ValueError):
        return False
    return True


def to_utc(value: datetime) -> DateTime:
    """
    Normalise an aware datetime to a pendulum instant in UTC.

    Naive datetimes are interpreted as UTC.
    """
    if not isinstance(value, DateTime):
        value = pendulum.instance(value, tz=UTC)
    return value.in_timezone(UTC)


def clamp(value: int, lower: int, upper: int) -> int:
    """Clamp ``value`` into ``[lower, upper]``."""
    return max(lower, min(upper, value))


def weekday_index(day: Date) -> int:
    """Weekday of a local date, 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


def local_days(start: DateTime, end: DateTime, timezone: str) -> Iterator[Date]:
    """
    Yield every local calendar date touched by ``[start, end)`` in ``timezone``.
    """
    if start >= end:
        return

    current = start.in_timezone(timezone).date()
    # The last instant inside the half-open range decides the final date.
    last = end.subtract(microseconds=1).in_timezone(timezone).date()

    while current <= last:
        yield current
        current = current.add(days=1)


def wall_clock_to_instant(day: Date, minute: int, timezone: str) -> DateTime:
    """
    Convert a local wall-clock time on ``day`` to an absolute UTC instant.

    ``minute`` counts from local midnight; 1440 denotes the following
    midnight. A wall-clock time that is skipped by a daylight-saving jump
    resolves to the first instant after the gap.
    """
    if minute >= MINUTES_PER_DAY:
        next_day = day.add(days=1)
        local = pendulum.datetime(next_day.year, next_day.month, next_day.day, tz=timezone)
    else:
        local = pendulum.datetime(
            day.year,
            day.month,
            day.day,
            minute // 60,
            minute % 60,
            tz=timezone,
        )
    return local.in_timezone(UTC)


def local_time_exists(day: Date, minute: int, timezone: str) -> bool:
    """Return False if the wall-clock time is skipped on ``day`` by a DST jump."""
    local = wall_clock_to_instant(day, minute, timezone).in_timezone(timezone)
    if minute >= MINUTES_PER_DAY:
        return local.date() == day.add(days=1) and local.hour == 0 and local.minute == 0
    return local.date() == day and local.hour * 60 + local.minute == minute


def wall_clock_instants(day: Date, minute: int, timezone: str) -> List[DateTime]:
    """
    Every absolute UTC instant at which the local clock shows ``minute`` on ``day``.

    Usually one instant. Empty when a spring-forward jump skips the time,
    and two (earlier first) when a fall-back repeats it.
    """
    if not local_time_exists(day, minute, timezone):
        return []

    hour, minute = divmod(minute, 60)
    instants = {
        pendulum.datetime(day.year, day.month, day.day, hour, minute, tz=timezone, fold=fold).in_timezone(UTC)
        for fold in (0, 1)
    }
    return sorted(instants)


def overlaps_any(candidate, ranges: Iterable) -> bool:
    """Check a range against many ranges using half-open semantics."""
    return any(candidate.overlaps(other) for other in ranges)


def parse_hhmm(value: str) -> int:
    """
    Parse ``HH:MM`` into minutes since midnight. ``24:00`` is accepted.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time of day: {value!r}, expected HH:MM") from exc

    total = hours * 60 + minutes
    if not 0 <= minutes < 60 or not 0 <= total <= MINUTES_PER_DAY:
        raise ValueError(f"Time of day out of range: {value!r}")
    return total


def format_minutes(minute: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minute // 60:02d}:{minute % 60:02d}"
