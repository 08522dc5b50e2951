"""
Round-robin host assignment for team appointment types.

Generation only advertises which hosts *could* take a slot. The actual host
is picked here, at commit time, against freshly read bookings. The caller
must run this inside the same transaction that writes the booking and the
advanced cursor.
"""

import logging
from typing import Mapping, Sequence

from .exceptions import NoHostAvailableError
from .models import AppointmentTypeConfig, Assignment, BookedInterval, SlotCandidate
from .slot_generator import host_is_free

logger = logging.getLogger(__name__)


def assign_host(
    appointment_type: AppointmentTypeConfig,
    chosen_slot: SlotCandidate,
    booked_by_host: Mapping[str, Sequence[BookedInterval]],
) -> Assignment:
    """
    Pick the next eligible, still-free host in rotation order.

    The scan starts at ``rotation_cursor`` and wraps around the team once.
    Hosts missing from ``chosen_slot.eligible_host_ids`` are never picked,
    even if they happen to be free.

    Args:
        appointment_type: Type carrying the team order and current cursor
        chosen_slot: Candidate picked by the customer
        booked_by_host: Bookings per host, read at commit time

    Returns:
        The selected host and the cursor value to persist with the booking

    Raises:
        NoHostAvailableError: If every eligible host is now taken
    """
    team = list(appointment_type.team_host_ids)

    if not team:
        raise NoHostAvailableError("Appointment type has no team members")

    team_size = len(team)
    offset = appointment_type.rotation_cursor % team_size

    for step in range(team_size):
        index = (offset + step) % team_size
        host_id = team[index]

        if host_id not in chosen_slot.eligible_host_ids:
            continue

        if not host_is_free(appointment_type, chosen_slot.start, booked_by_host.get(host_id, ())):
            logger.info(
                "Host %s was eligible for %s but is now booked",
                host_id,
                chosen_slot.start.to_iso8601_string(),
            )
            continue

        return Assignment(host_id=host_id, next_cursor=(index + 1) % team_size)

    raise NoHostAvailableError(
        f"No eligible host is still free at {chosen_slot.start.to_iso8601_string()}"
    )
