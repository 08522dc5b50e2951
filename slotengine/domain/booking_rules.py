"""
Validation of a caller-supplied booking start.

Used when a booking arrives as a bare start instant instead of a generated
candidate: the start must still describe a slot the generator could have
produced for at least one host.
"""

from typing import FrozenSet, Iterable, Mapping

from pendulum import DateTime

from .exceptions import InvalidBookingError
from .intervals import is_valid_timezone, to_utc, wall_clock_to_instant, weekday_index
from .models import AppointmentTypeConfig, SlotCandidate, WeeklyAvailability

OUT_OF_RANGE = "startsAt_out_of_range"
OUTSIDE_AVAILABILITY = "outside_availability"
INVALID_START = "invalid_startsAt"

DEFAULT_HORIZON_DAYS = 60


def fits_availability(
    availability: WeeklyAvailability,
    appointment_type: AppointmentTypeConfig,
    start: DateTime,
) -> bool:
    """
    Check that the buffered interval of ``start`` lies inside an enabled
    day rule, evaluated in the host's own timezone.
    """
    tz = availability.time_zone
    if not is_valid_timezone(tz):
        return False

    day = start.in_timezone(tz).date()
    rule = availability.rule_for(weekday_index(day))

    if rule is None or not rule.is_usable():
        return False

    opens = wall_clock_to_instant(day, rule.start_minute, tz)
    closes = wall_clock_to_instant(day, rule.end_minute, tz)

    return appointment_type.buffered(start).start >= opens and (
        start.add(
            minutes=appointment_type.duration_minutes + appointment_type.buffer_after_minutes
        )
        <= closes
    )


def check_horizon(start: DateTime, now: DateTime, horizon_days: int = DEFAULT_HORIZON_DAYS) -> None:
    """
    Raises:
        InvalidBookingError: If ``start`` is in the past or too far ahead
    """
    if start.second or start.microsecond:
        raise InvalidBookingError(INVALID_START, "Booking start must be on a whole minute")

    now = to_utc(now)
    if start <= now or start > now.add(days=horizon_days):
        raise InvalidBookingError(
            OUT_OF_RANGE,
            f"Booking start must be after now and within {horizon_days} days",
        )


def hosts_covering(
    host_availabilities: Mapping[str, WeeklyAvailability],
    appointment_type: AppointmentTypeConfig,
    start: DateTime,
    host_ids: Iterable[str],
) -> FrozenSet[str]:
    """The subset of ``host_ids`` whose availability covers the slot at ``start``."""
    return frozenset(
        host_id
        for host_id in host_ids
        if host_id in host_availabilities
        and fits_availability(host_availabilities[host_id], appointment_type, start)
    )


def candidate_for_start(
    host_availabilities: Mapping[str, WeeklyAvailability],
    appointment_type: AppointmentTypeConfig,
    start: DateTime,
    now: DateTime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> SlotCandidate:
    """
    Build the candidate for a requested start.

    ``eligible_host_ids`` lists every host whose availability covers the
    slot. Bookings are not consulted here; that re-check belongs to the
    commit step.

    Raises:
        InvalidBookingError: If the start is out of range or no host's
            availability covers it
    """
    start = to_utc(start)
    check_horizon(start, now, horizon_days)

    eligible = hosts_covering(host_availabilities, appointment_type, start, appointment_type.host_ids())

    if not eligible:
        raise InvalidBookingError(
            OUTSIDE_AVAILABILITY,
            f"{start.to_iso8601_string()} is outside the hosts' availability",
        )

    return SlotCandidate(
        start=start,
        end=appointment_type.slot_end(start),
        eligible_host_ids=eligible,
    )
