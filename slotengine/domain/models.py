"""
Domain models for availability, appointment types, bookings and slots.

Instants are pendulum DateTimes normalised to UTC. Every model is an
immutable value so snapshots can be shared freely between threads.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Tuple

import pendulum
from pendulum import DateTime

from .intervals import MINUTES_PER_DAY, clamp, format_minutes, to_utc

MAX_BUFFER_MINUTES = 120
MAX_WINDOW_DAYS = 60

WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Ranges that merely touch do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.to_iso8601_string()} - {self.end.to_iso8601_string()}"


@dataclass(frozen=True)
class DayRule:
    """
    Recurring availability for one weekday (0=Sunday ... 6=Saturday).

    Malformed rules (``start_minute >= end_minute``) are kept as-is and
    simply treated as unavailable.
    """
    weekday: int
    enabled: bool = True
    start_minute: int = 9 * 60
    end_minute: int = 17 * 60

    def is_usable(self) -> bool:
        return self.enabled and 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY

    @classmethod
    def clamped(cls, weekday: int, enabled: bool, start_minute: int, end_minute: int) -> "DayRule":
        """Build a rule with minutes forced into a single day."""
        return cls(
            weekday=weekday,
            enabled=enabled,
            start_minute=clamp(int(start_minute), 0, MINUTES_PER_DAY),
            end_minute=clamp(int(end_minute), 0, MINUTES_PER_DAY),
        )

    def __str__(self) -> str:
        name = WEEKDAY_NAMES[self.weekday % 7]
        if not self.enabled:
            return f"{name}: off"
        return f"{name}: {format_minutes(self.start_minute)}-{format_minutes(self.end_minute)}"


@dataclass(frozen=True)
class WeeklyAvailability:
    """A host's recurring weekly availability in their own timezone."""
    time_zone: str
    days: Tuple[DayRule, ...] = ()

    def rule_for(self, weekday: int) -> DayRule | None:
        for rule in self.days:
            if rule.weekday == weekday:
                return rule
        return None

    @classmethod
    def default(cls, time_zone: str = "UTC") -> "WeeklyAvailability":
        """Monday to Friday, 09:00 - 17:00."""
        return cls(
            time_zone=time_zone,
            days=tuple(
                DayRule(weekday=day, enabled=1 <= day <= 5)
                for day in range(7)
            ),
        )


class SchedulingMode(str, Enum):
    SINGLE = "single"
    ROUND_ROBIN = "round_robin"


@dataclass(frozen=True)
class AppointmentTypeConfig:
    """
    Booking rules for one appointment type.

    ``rotation_cursor`` is only ever advanced by a committed round-robin
    assignment; ``version`` guards that update against concurrent writers.
    """
    duration_minutes: int
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    scheduling_mode: SchedulingMode = SchedulingMode.SINGLE
    team_host_ids: Tuple[str, ...] = ()
    rotation_cursor: int = 0
    type_id: str = ""
    version: int = 0

    def host_ids(self) -> Tuple[str, ...]:
        """Hosts considered for this type: the owner, or the whole team."""
        if self.scheduling_mode is SchedulingMode.ROUND_ROBIN:
            return tuple(self.team_host_ids)
        return tuple(self.team_host_ids[:1])

    def slot_end(self, start: DateTime) -> DateTime:
        return start.add(minutes=self.duration_minutes)

    def buffered(self, start: DateTime) -> TimeRange:
        """The occupied interval including before/after buffers."""
        return TimeRange(
            start=start.subtract(minutes=self.buffer_before_minutes),
            end=start.add(minutes=self.duration_minutes + self.buffer_after_minutes),
        )


@dataclass(frozen=True)
class BookedInterval:
    """
    A committed booking for one host. Immutable once written.

    The buffers the booking was committed with are kept so that its full
    occupied span stays reserved for later overlap checks.
    """
    host_id: str
    start: DateTime
    end: DateTime
    booking_id: str = ""
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0

    def occupied(self) -> TimeRange:
        return TimeRange(
            start=self.start.subtract(minutes=self.buffer_before_minutes),
            end=self.end.add(minutes=self.buffer_after_minutes),
        )


@dataclass(frozen=True)
class SlotCandidate:
    """A bookable start time and the hosts who could take it."""
    start: DateTime
    end: DateTime
    eligible_host_ids: FrozenSet[str] = field(default_factory=frozenset)

    def label(self, time_zone: str) -> str:
        """Short local label, e.g. ``Mon, Nov 25, 9:00 AM CET``."""
        local = self.start.in_timezone(time_zone)
        return local.format("ddd, MMM D, h:mm A zz")


@dataclass(frozen=True)
class GenerationWindow:
    """The absolute range to generate slots for, plus iteration limits."""
    from_instant: DateTime
    to_instant: DateTime
    step_minutes: int = 15
    max_slots: int = 48

    def is_empty(self) -> bool:
        return (
            self.from_instant >= self.to_instant
            or self.step_minutes <= 0
            or self.max_slots <= 0
        )

    @classmethod
    def from_days(
        cls,
        now: DateTime,
        days: int,
        step_minutes: int = 15,
        max_slots: int = 48,
    ) -> "GenerationWindow":
        """A window starting at ``now`` and spanning 1 to 60 days."""
        start = to_utc(now)
        return cls(
            from_instant=start,
            to_instant=start.add(days=clamp(days, 1, MAX_WINDOW_DAYS)),
            step_minutes=step_minutes,
            max_slots=max_slots,
        )


@dataclass(frozen=True)
class Assignment:
    """Outcome of a round-robin selection."""
    host_id: str
    next_cursor: int


@dataclass(frozen=True)
class BookingReceipt:
    """What a successful commit wrote."""
    booking: BookedInterval
    type_id: str
    rotation_cursor: int


def new_booking_id() -> str:
    """Sortable booking identifier based on the commit time."""
    return f"bk_{pendulum.now('UTC').format('YYYYMMDDHHmmss')}_{uuid.uuid4().hex[:8]}"
