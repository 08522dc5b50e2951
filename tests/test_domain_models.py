"""
Tests for domain models and interval helpers.
"""

import pendulum
import pytest

from slotengine.domain.intervals import (
    is_valid_timezone,
    local_days,
    local_time_exists,
    parse_hhmm,
    wall_clock_to_instant,
    weekday_index,
)
from slotengine.domain.models import (
    AppointmentTypeConfig,
    BookedInterval,
    DayRule,
    GenerationWindow,
    SchedulingMode,
    SlotCandidate,
    TimeRange,
    WeeklyAvailability,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        start = pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=end)

    def test_overlaps_is_half_open(self):
        """Ranges that touch at an edge do not overlap."""
        tr1 = TimeRange(
            start=pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 12:00", tz="Europe/Berlin")
        )
        tr2 = TimeRange(
            start=pendulum.parse("2024-11-25 11:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 14:00", tz="Europe/Berlin")
        )
        tr3 = TimeRange(
            start=pendulum.parse("2024-11-25 12:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")
        )

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)
        assert not tr3.overlaps(tr1)

    def test_overlap_across_timezones(self):
        berlin = TimeRange(
            start=pendulum.parse("2024-11-25 10:00", tz="Europe/Berlin"),
            end=pendulum.parse("2024-11-25 11:00", tz="Europe/Berlin")
        )
        utc = TimeRange(
            start=pendulum.parse("2024-11-25T09:30:00Z"),
            end=pendulum.parse("2024-11-25T09:45:00Z")
        )

        assert berlin.overlaps(utc)
        assert berlin.contains(utc)


class TestDayRuleAndWeek:
    """Tests for weekly availability models."""

    def test_malformed_rule_is_not_usable(self):
        assert not DayRule(weekday=1, start_minute=600, end_minute=600).is_usable()
        assert not DayRule(weekday=1, enabled=False).is_usable()
        assert DayRule(weekday=1, start_minute=0, end_minute=1440).is_usable()

    def test_clamped_rule(self):
        rule = DayRule.clamped(weekday=2, enabled=True, start_minute=-30, end_minute=5000)

        assert rule.start_minute == 0
        assert rule.end_minute == 1440

    def test_default_week(self):
        week = WeeklyAvailability.default("Europe/Berlin")

        assert not week.rule_for(0).enabled
        assert week.rule_for(1).enabled
        assert week.rule_for(1).start_minute == 540
        assert week.rule_for(5).end_minute == 1020
        assert not week.rule_for(6).enabled
        assert str(week.rule_for(3)) == "wed: 09:00-17:00"


class TestAppointmentType:
    """Tests for AppointmentTypeConfig and related values."""

    def test_buffered_interval(self):
        appointment_type = AppointmentTypeConfig(
            duration_minutes=30,
            buffer_before_minutes=10,
            buffer_after_minutes=5,
        )
        start = pendulum.parse("2024-11-25T10:00:00Z")

        occupied = appointment_type.buffered(start)

        assert occupied.start == pendulum.parse("2024-11-25T09:50:00Z")
        assert occupied.end == pendulum.parse("2024-11-25T10:35:00Z")

    def test_host_ids_by_mode(self):
        single = AppointmentTypeConfig(duration_minutes=30, team_host_ids=("a", "b"))
        team = AppointmentTypeConfig(
            duration_minutes=30,
            scheduling_mode=SchedulingMode.ROUND_ROBIN,
            team_host_ids=("a", "b"),
        )

        assert single.host_ids() == ("a",)
        assert team.host_ids() == ("a", "b")

    def test_booked_interval_occupied(self):
        booking = BookedInterval(
            host_id="a",
            start=pendulum.parse("2024-11-25T10:00:00Z"),
            end=pendulum.parse("2024-11-25T10:30:00Z"),
            buffer_before_minutes=5,
            buffer_after_minutes=15,
        )

        assert booking.occupied().duration_minutes() == 50

    def test_slot_label(self):
        slot = SlotCandidate(
            start=pendulum.parse("2024-11-25T08:00:00Z"),
            end=pendulum.parse("2024-11-25T08:30:00Z"),
        )

        assert slot.label("Europe/Berlin").startswith("Mon, Nov 25, 9:00 AM")

    def test_window_from_days_is_clamped(self):
        now = pendulum.parse("2024-11-25T08:00:00Z")

        assert GenerationWindow.from_days(now, 0).to_instant == now.add(days=1)
        assert GenerationWindow.from_days(now, 365).to_instant == now.add(days=60)
        assert GenerationWindow.from_days(now, 14).from_instant == now


class TestIntervals:
    """Tests for timezone helpers."""

    def test_weekday_index_starts_on_sunday(self):
        assert weekday_index(pendulum.date(2024, 11, 24)) == 0
        assert weekday_index(pendulum.date(2024, 11, 25)) == 1
        assert weekday_index(pendulum.date(2024, 11, 30)) == 6

    def test_wall_clock_to_instant_uses_date_specific_offset(self):
        winter = wall_clock_to_instant(pendulum.date(2024, 1, 15), 540, "Europe/Berlin")
        summer = wall_clock_to_instant(pendulum.date(2024, 7, 15), 540, "Europe/Berlin")

        assert winter.hour == 8
        assert summer.hour == 7

    def test_end_of_day_is_next_midnight(self):
        instant = wall_clock_to_instant(pendulum.date(2024, 11, 25), 1440, "Europe/Berlin")

        assert instant == pendulum.parse("2024-11-26 00:00", tz="Europe/Berlin")

    def test_skipped_local_time(self):
        spring_forward = pendulum.date(2024, 3, 10)

        assert not local_time_exists(spring_forward, 150, "America/New_York")
        assert local_time_exists(spring_forward, 180, "America/New_York")
        assert local_time_exists(pendulum.date(2024, 3, 11), 150, "America/New_York")

    def test_local_days_cover_window(self):
        start = pendulum.parse("2024-11-25T22:30:00Z")
        end = pendulum.parse("2024-11-26T23:00:00Z")

        days = list(local_days(start, end, "Europe/Berlin"))

        assert days == [pendulum.date(2024, 11, 25), pendulum.date(2024, 11, 26)]
        assert list(local_days(end, start, "Europe/Berlin")) == []

    def test_timezone_validation(self):
        assert is_valid_timezone("Europe/Berlin")
        assert not is_valid_timezone("Nowhere/Special")
        assert not is_valid_timezone("")

    def test_parse_hhmm(self):
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("24:00") == 1440
        with pytest.raises(ValueError):
            parse_hhmm("25:00")
        with pytest.raises(ValueError):
            parse_hhmm("nine")
