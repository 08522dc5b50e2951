"""
Core business logic for generating bookable appointment slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O). The same inputs,
including ``now``, always produce the same output.
"""

import heapq
import logging
from itertools import groupby, islice
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from pendulum import DateTime

from .intervals import (
    is_valid_timezone,
    local_days,
    overlaps_any,
    to_utc,
    wall_clock_instants,
    wall_clock_to_instant,
    weekday_index,
)
from .models import (
    AppointmentTypeConfig,
    BookedInterval,
    GenerationWindow,
    SlotCandidate,
    TimeRange,
    WeeklyAvailability,
)

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Generates ordered, non-overlapping candidate slots for a host or a team.

    Algorithm:
    1. For every host, walk the local calendar days covering the window in
       that host's own timezone
    2. Turn each enabled day rule into an absolute opening/closing pair
    3. Step the local wall clock from the rule's start by ``step_minutes``,
       convert each grid time to its instant(s), and keep starts whose
       buffered interval fits the day and avoids the host's bookings
    4. Merge the per-host streams by start instant; in round-robin mode a
       start survives if at least one team member can take it
    5. Stop as soon as ``max_slots`` candidates have been produced
    """

    def generate(
        self,
        host_availabilities: Mapping[str, WeeklyAvailability],
        booked_by_host: Mapping[str, Sequence[BookedInterval]],
        appointment_type: AppointmentTypeConfig,
        window: GenerationWindow,
        now: DateTime,
    ) -> List[SlotCandidate]:
        """
        Produce candidate slots for an appointment type.

        Args:
            host_availabilities: Weekly availability per host id
            booked_by_host: Already committed bookings per host id
            appointment_type: Duration, buffers, mode and team
            window: Absolute range, step and result cap
            now: Reference instant; only starts strictly after it are kept

        Returns:
            SlotCandidates ascending by start, at most ``window.max_slots``
        """
        host_ids = appointment_type.host_ids()

        if not host_ids or window.is_empty() or appointment_type.duration_minutes <= 0:
            return []

        now = to_utc(now)
        streams = []

        for host_id in host_ids:
            availability = host_availabilities.get(host_id)
            if availability is None:
                logger.debug("No availability for host %s, skipping", host_id)
                continue

            streams.append(
                self._host_starts(
                    host_id=host_id,
                    availability=availability,
                    busy=busy_ranges(booked_by_host.get(host_id, ())),
                    appointment_type=appointment_type,
                    window=window,
                    now=now,
                )
            )

        if not streams:
            return []

        merged = heapq.merge(*streams, key=lambda item: item[0])
        candidates = (
            SlotCandidate(
                start=start,
                end=appointment_type.slot_end(start),
                eligible_host_ids=frozenset(host for _, host in group),
            )
            for start, group in groupby(merged, key=lambda item: item[0])
        )

        slots = list(islice(candidates, window.max_slots))
        logger.debug(
            "Generated %d slot(s) for type %s across %d host(s)",
            len(slots),
            appointment_type.type_id or "<anonymous>",
            len(host_ids),
        )
        return slots

    def _host_starts(
        self,
        host_id: str,
        availability: WeeklyAvailability,
        busy: List[TimeRange],
        appointment_type: AppointmentTypeConfig,
        window: GenerationWindow,
        now: DateTime,
    ) -> Iterator[Tuple[DateTime, str]]:
        """
        Lazily yield ``(start, host_id)`` for every start this host can take.

        Starts sit on the local wall-clock grid ``start_minute + k * step``.
        Grid times skipped by a DST jump are dropped and repeated ones yield
        both instants. Starts are yielded in ascending order, which lets the
        caller merge hosts without sorting and stop early.
        """
        tz = availability.time_zone

        if not is_valid_timezone(tz):
            logger.warning("Host %s has an unknown timezone %r, no slots generated", host_id, tz)
            return

        window_start = to_utc(window.from_instant)
        window_end = to_utc(window.to_instant)
        tail_minutes = appointment_type.duration_minutes + appointment_type.buffer_after_minutes

        for day in local_days(window_start, window_end, tz):
            rule = availability.rule_for(weekday_index(day))

            if rule is None or not rule.is_usable():
                continue

            opens = wall_clock_to_instant(day, rule.start_minute, tz)
            closes = wall_clock_to_instant(day, rule.end_minute, tz)

            # DST resolution must leave a non-empty opening range.
            if closes <= opens or closes <= window_start or opens >= window_end:
                continue

            day_range = TimeRange(start=opens, end=closes)

            starts = sorted(
                instant
                for minute in range(rule.start_minute, rule.end_minute - tail_minutes + 1, window.step_minutes)
                for instant in wall_clock_instants(day, minute, tz)
            )

            for start in starts:
                if start >= window_end:
                    return

                if self._is_open(start, day_range, busy, appointment_type, window_start, now):
                    yield start, host_id

    @staticmethod
    def _is_open(
        start: DateTime,
        day_range: TimeRange,
        busy: List[TimeRange],
        appointment_type: AppointmentTypeConfig,
        window_start: DateTime,
        now: DateTime,
    ) -> bool:
        if start < window_start or start <= now:
            return False

        occupied = appointment_type.buffered(start)

        # Buffers must not spill outside the day rule, even across a DST shift.
        if not day_range.contains(occupied):
            return False

        return not overlaps_any(occupied, busy)


_default_generator = SlotGenerator()


def generate_slots(
    host_availabilities: Mapping[str, WeeklyAvailability],
    booked_by_host: Mapping[str, Sequence[BookedInterval]],
    appointment_type: AppointmentTypeConfig,
    window: GenerationWindow,
    now: DateTime,
) -> List[SlotCandidate]:
    """Module-level shortcut for :meth:`SlotGenerator.generate`."""
    return _default_generator.generate(
        host_availabilities=host_availabilities,
        booked_by_host=booked_by_host,
        appointment_type=appointment_type,
        window=window,
        now=now,
    )


def host_is_free(
    appointment_type: AppointmentTypeConfig,
    start: DateTime,
    bookings: Sequence[BookedInterval],
) -> bool:
    """Check a single start against a host's current bookings."""
    occupied = appointment_type.buffered(start)
    return not overlaps_any(occupied, busy_ranges(bookings))


def busy_ranges(bookings: Iterable[BookedInterval]) -> List[TimeRange]:
    """Occupied spans of ``bookings``; bookings that end before they start are skipped."""
    ranges = []
    for booking in bookings:
        if booking.end <= booking.start:
            logger.warning(
                "Ignoring booking %s for host %s: end %s is not after start %s",
                booking.booking_id or "<unknown>",
                booking.host_id,
                booking.end.to_iso8601_string(),
                booking.start.to_iso8601_string(),
            )
            continue
        ranges.append(booking.occupied())
    return ranges


def bookings_by_host(bookings: Dict[str, Sequence[BookedInterval]], host_ids: Sequence[str]):
    """Return a mapping containing every host id, defaulting to no bookings."""
    return {host_id: list(bookings.get(host_id, ())) for host_id in host_ids}
