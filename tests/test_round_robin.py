"""
Tests for round-robin host assignment.
"""

from collections import Counter
from dataclasses import replace

import pendulum
import pytest

from slotengine.domain.exceptions import NoHostAvailableError
from slotengine.domain.models import (
    AppointmentTypeConfig,
    BookedInterval,
    SchedulingMode,
    SlotCandidate,
)
from slotengine.domain.round_robin import assign_host

START = pendulum.parse("2024-11-25T10:00:00Z")


def _team_type(*hosts, cursor=0, before=0, after=0):
    return AppointmentTypeConfig(
        type_id="demo",
        duration_minutes=30,
        buffer_before_minutes=before,
        buffer_after_minutes=after,
        scheduling_mode=SchedulingMode.ROUND_ROBIN,
        team_host_ids=tuple(hosts),
        rotation_cursor=cursor,
    )


def _slot(start=START, eligible=("a", "b", "c")):
    return SlotCandidate(start=start, end=start.add(minutes=30), eligible_host_ids=frozenset(eligible))


def _booking(host, start=START, minutes=30):
    return BookedInterval(host_id=host, start=start, end=start.add(minutes=minutes))


class TestAssignHost:
    """Tests for assign_host."""

    def test_starts_at_cursor(self):
        assignment = assign_host(_team_type("a", "b", "c", cursor=1), _slot(), {})

        assert assignment.host_id == "b"
        assert assignment.next_cursor == 2

    def test_cursor_wraps_around(self):
        assignment = assign_host(_team_type("a", "b", "c", cursor=2), _slot(), {})

        assert assignment.host_id == "c"
        assert assignment.next_cursor == 0

    def test_out_of_range_cursor_is_normalised(self):
        assignment = assign_host(_team_type("a", "b", "c", cursor=7), _slot(), {})

        assert assignment.host_id == "b"

    def test_skips_ineligible_hosts(self):
        assignment = assign_host(_team_type("a", "b", "c"), _slot(eligible=("c",)), {})

        assert assignment.host_id == "c"
        assert assignment.next_cursor == 0

    def test_skips_hosts_booked_since_generation(self):
        assignment = assign_host(
            _team_type("a", "b", "c"),
            _slot(),
            {"a": [_booking("a")]},
        )

        assert assignment.host_id == "b"
        assert assignment.next_cursor == 2

    def test_buffer_is_rechecked(self):
        """A booking ending inside the leading buffer blocks the host."""
        assignment = assign_host(
            _team_type("a", "b", before=15),
            _slot(eligible=("a", "b")),
            {"a": [_booking("a", start=START.subtract(minutes=40))]},
        )

        assert assignment.host_id == "b"

    def test_only_eligible_host_taken(self):
        """Team of 2, only A eligible and A just got booked: no fallback to B."""
        with pytest.raises(NoHostAvailableError):
            assign_host(
                _team_type("a", "b"),
                _slot(eligible=("a",)),
                {"a": [_booking("a")], "b": []},
            )

    def test_empty_team(self):
        with pytest.raises(NoHostAvailableError):
            assign_host(_team_type(), _slot(eligible=()), {})


class TestFairness:
    """Rotation over consecutive bookings."""

    def _run(self, hosts, bookings_count):
        appointment_type = _team_type(*hosts)
        assigned = []
        for i in range(bookings_count):
            slot = _slot(start=START.add(hours=i), eligible=hosts)
            assignment = assign_host(appointment_type, slot, {})
            assigned.append(assignment.host_id)
            appointment_type = replace(appointment_type, rotation_cursor=assignment.next_cursor)
        return assigned

    def test_six_bookings_over_three_hosts(self):
        assert self._run(("a", "b", "c"), 6) == ["a", "b", "c", "a", "b", "c"]

    @pytest.mark.parametrize("bookings_count", [1, 4, 7, 11])
    def test_counts_differ_by_at_most_one(self, bookings_count):
        counts = Counter(self._run(("a", "b", "c"), bookings_count))
        team_size = 3

        for host in ("a", "b", "c"):
            assert counts[host] in (bookings_count // team_size, -(-bookings_count // team_size))
