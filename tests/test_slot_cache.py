"""
Tests for SlotCache.
"""

import pendulum

from slotengine.domain.models import (
    AppointmentTypeConfig,
    GenerationWindow,
    SchedulingMode,
    SlotCandidate,
)
from slotengine.services.slot_cache import SlotCache

START = pendulum.parse("2024-11-25T09:00:00Z")


class FakeClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


def _slots(count=3):
    return [
        SlotCandidate(
            start=START.add(minutes=30 * i),
            end=START.add(minutes=30 * i + 30),
            eligible_host_ids=frozenset({"a"}),
        )
        for i in range(count)
    ]


def _key(hosts=("a",)):
    appointment_type = AppointmentTypeConfig(
        type_id="t",
        duration_minutes=30,
        scheduling_mode=SchedulingMode.ROUND_ROBIN,
        team_host_ids=hosts,
    )
    window = GenerationWindow(from_instant=START, to_instant=START.add(days=1))
    return SlotCache.key_for(appointment_type, window)


class TestSlotCache:
    """Expiry and invalidation."""

    def test_hit_then_expiry(self):
        clock = FakeClock()
        cache = SlotCache(ttl_seconds=30, clock=clock)
        cache.put(_key(), _slots())

        clock.value = 29
        assert len(cache.get(_key(), now=START.subtract(hours=1))) == 3

        clock.value = 31
        assert cache.get(_key(), now=START.subtract(hours=1)) is None
        assert len(cache) == 0

    def test_past_slots_are_filtered(self):
        cache = SlotCache(ttl_seconds=30, clock=FakeClock())
        cache.put(_key(), _slots())

        remaining = cache.get(_key(), now=START.add(minutes=30))

        assert [slot.start for slot in remaining] == [START.add(minutes=60)]

    def test_invalidate_hosts_drops_overlapping_host_sets(self):
        cache = SlotCache(ttl_seconds=30, clock=FakeClock())
        cache.put(_key(("a", "b")), _slots())
        cache.put(_key(("c",)), _slots())

        dropped = cache.invalidate_hosts(["b"])

        assert dropped == 1
        assert cache.get(_key(("a", "b")), now=START) is None
        assert cache.get(_key(("c",)), now=START.subtract(minutes=1)) is not None

    def test_zero_ttl_disables_caching(self):
        cache = SlotCache(ttl_seconds=0, clock=FakeClock())
        cache.put(_key(), _slots())

        assert len(cache) == 0

    def test_put_after_invalidation_is_refused(self):
        """A generation that started before a commit must not repopulate the cache."""
        cache = SlotCache(ttl_seconds=30, clock=FakeClock())
        stale_token = cache.token_for(_key())

        cache.invalidate_hosts(["a"])

        assert not cache.put(_key(), _slots(), stale_token)
        assert len(cache) == 0
        assert cache.put(_key(), _slots(), cache.token_for(_key()))
        assert len(cache) == 1
