"""
Short-lived cache for generated slot lists.

Generation is pure, so results can be reused for identical inputs for a
short while. Any committed booking invalidates every entry that involves
the booked host.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Tuple

from pendulum import DateTime

from ..domain.models import AppointmentTypeConfig, GenerationWindow, SlotCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotCacheKey:
    host_ids: FrozenSet[str]
    window: GenerationWindow
    appointment_type: AppointmentTypeConfig


class SlotCache:
    """
    Thread-safe TTL cache keyed by host set, window and appointment type.

    Each host carries an invalidation counter. Callers take a token before
    reading the snapshot they generate from and hand it back to ``put``; if
    any host was invalidated in between, the result is not stored.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[SlotCacheKey, Tuple[float, List[SlotCandidate]]] = {}
        self._invalidations: Dict[str, int] = {}

    @staticmethod
    def key_for(appointment_type: AppointmentTypeConfig, window: GenerationWindow) -> SlotCacheKey:
        return SlotCacheKey(
            host_ids=frozenset(appointment_type.host_ids()),
            window=window,
            appointment_type=appointment_type,
        )

    def token_for(self, key: SlotCacheKey) -> Tuple[int, ...]:
        """Current invalidation counters of the key's hosts."""
        with self._lock:
            return self._token(key)

    def get(self, key: SlotCacheKey, now: DateTime) -> List[SlotCandidate] | None:
        """
        Return cached slots that are still in the future, or None on a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            stored_at, slots = entry
            if self._clock() - stored_at > self._ttl:
                del self._entries[key]
                return None

        return [slot for slot in slots if slot.start > now]

    def put(self, key: SlotCacheKey, slots: List[SlotCandidate], token: Tuple[int, ...] | None = None) -> bool:
        """Store ``slots`` unless caching is off or a host changed since ``token`` was taken."""
        if self._ttl <= 0:
            return False
        with self._lock:
            if token is not None and token != self._token(key):
                logger.debug("Discarding slot list generated from a stale snapshot")
                return False
            self._entries[key] = (self._clock(), list(slots))
        return True

    def invalidate_hosts(self, host_ids) -> int:
        """Drop every entry whose host set includes any of ``host_ids``."""
        targets = set(host_ids)
        with self._lock:
            for host_id in targets:
                self._invalidations[host_id] = self._invalidations.get(host_id, 0) + 1
            stale = [key for key in self._entries if key.host_ids & targets]
            for key in stale:
                del self._entries[key]

        if stale:
            logger.debug("Invalidated %d cached slot list(s) for %s", len(stale), sorted(targets))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _token(self, key: SlotCacheKey) -> Tuple[int, ...]:
        return tuple(self._invalidations.get(host_id, 0) for host_id in sorted(key.host_ids))
