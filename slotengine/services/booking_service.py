"""
Application services for listing slots and committing bookings.

The service coordinates snapshot reads from a booking store adapter and
delegates the actual slot and host computations to the domain layer. A
booking commit is one atomic unit: re-read bookings, pick the host,
re-validate the overlap, write the booking and advance the rotation cursor.
Either all of it happens or none of it does.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import replace
from typing import Dict, List, Protocol, Sequence

import pendulum
from pendulum import DateTime

from ..domain.booking_rules import (
    DEFAULT_HORIZON_DAYS,
    OUT_OF_RANGE,
    OUTSIDE_AVAILABILITY,
    candidate_for_start,
    hosts_covering,
)
from ..domain.exceptions import InvalidBookingError, NoHostAvailableError, SlotConflictError
from ..domain.intervals import to_utc
from ..domain.models import (
    AppointmentTypeConfig,
    BookedInterval,
    BookingReceipt,
    GenerationWindow,
    SchedulingMode,
    SlotCandidate,
    TimeRange,
    WeeklyAvailability,
    new_booking_id,
)
from ..domain.round_robin import assign_host
from ..domain.slot_generator import SlotGenerator, bookings_by_host, host_is_free
from .slot_cache import SlotCache

logger = logging.getLogger(__name__)


class SnapshotReader(Protocol):
    """Read access shared by the store and its transactions."""

    def get_appointment_type(self, type_id: str) -> AppointmentTypeConfig:
        """Return the type record, including cursor and version."""

    def get_availabilities(self, host_ids: Sequence[str]) -> Dict[str, WeeklyAvailability]:
        """Return weekly availability per host, falling back to the default week."""

    def get_bookings(self, host_ids: Sequence[str], span: TimeRange) -> Dict[str, List[BookedInterval]]:
        """Return bookings whose occupied interval overlaps ``span``."""


class BookingTransaction(SnapshotReader, Protocol):
    """
    A unit of work. Writes become visible to others only if the block that
    opened the transaction exits without an exception.
    """

    def insert_if_free(self, booking: BookedInterval) -> None:
        """
        Stage ``booking``.

        Raises:
            SlotConflictError: If it overlaps another booking of the host
        """

    def advance_cursor(self, type_id: str, expected_version: int, new_cursor: int) -> None:
        """
        Compare-and-set the rotation cursor.

        Raises:
            SlotConflictError: If the type record changed since it was read
        """


class BookingStore(SnapshotReader, Protocol):
    """Protocol describing the storage behaviour needed by the service."""

    def transaction(self) -> AbstractContextManager[BookingTransaction]:
        """Open an atomic unit of work."""


class BookingService:
    """
    Orchestrates snapshot reads, slot generation and booking commits.

    Dependency inversion toward a protocol makes it easy to plug in the
    in-memory store, the JSON-file store or a real database adapter.
    """

    def __init__(
        self,
        store: BookingStore,
        slot_generator: SlotGenerator | None = None,
        cache: SlotCache | None = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> None:
        self._store = store
        self._slot_generator = slot_generator or SlotGenerator()
        self._cache = cache
        self._horizon_days = horizon_days

    def available_slots(
        self,
        type_id: str,
        window: GenerationWindow,
        now: DateTime | None = None,
    ) -> List[SlotCandidate]:
        """
        Generate advisory slots for an appointment type.

        Results may come from the cache; they are never authoritative.
        """
        now = to_utc(now or pendulum.now("UTC"))
        appointment_type = self._store.get_appointment_type(type_id)

        if window.is_empty():
            return []

        cache_key = cache_token = None
        if self._cache is not None:
            cache_key = SlotCache.key_for(appointment_type, window)
            cached = self._cache.get(cache_key, now)
            if cached is not None:
                return cached
            # Taken before the snapshot read so a commit racing with this
            # generation keeps its result out of the cache.
            cache_token = self._cache.token_for(cache_key)

        host_ids = appointment_type.host_ids()
        span = TimeRange(
            start=to_utc(window.from_instant).subtract(minutes=appointment_type.buffer_before_minutes),
            end=to_utc(window.to_instant).add(
                minutes=appointment_type.duration_minutes + appointment_type.buffer_after_minutes
            ),
        )

        slots = self._slot_generator.generate(
            host_availabilities=self._store.get_availabilities(host_ids),
            booked_by_host=self._store.get_bookings(host_ids, span),
            appointment_type=appointment_type,
            window=window,
            now=now,
        )

        if self._cache is not None:
            self._cache.put(cache_key, slots, cache_token)

        return slots

    def book(
        self,
        type_id: str,
        slot: SlotCandidate,
        now: DateTime | None = None,
    ) -> BookingReceipt:
        """
        Commit a booking for a previously generated candidate.

        Raises:
            SlotConflictError: The slot was taken meanwhile; regenerate and retry
            NoHostAvailableError: No eligible team member is free any more
            InvalidBookingError: The slot is in the past or outside availability
        """
        now = to_utc(now or pendulum.now("UTC"))

        if slot.start <= now:
            raise InvalidBookingError(OUT_OF_RANGE, "Chosen slot is in the past")

        with self._store.transaction() as txn:
            appointment_type = txn.get_appointment_type(type_id)

            # The candidate came from the caller; only trust hosts whose
            # current availability still covers it.
            covering = hosts_covering(
                txn.get_availabilities(appointment_type.host_ids()),
                appointment_type,
                slot.start,
                slot.eligible_host_ids,
            )
            if not covering:
                raise InvalidBookingError(
                    OUTSIDE_AVAILABILITY,
                    f"{slot.start.to_iso8601_string()} is outside the hosts' availability",
                )

            slot = replace(slot, eligible_host_ids=covering)
            receipt = self._commit(txn, appointment_type, slot)

        self._after_commit(receipt)
        return receipt

    def book_start(
        self,
        type_id: str,
        start: DateTime,
        now: DateTime | None = None,
    ) -> BookingReceipt:
        """
        Commit a booking for a bare start instant.

        The start is validated against availability inside the transaction
        before the usual commit steps run.

        Raises:
            InvalidBookingError: The start is out of range or outside availability
            SlotConflictError: The start overlaps an existing booking
            NoHostAvailableError: Every eligible team member is booked
        """
        now = to_utc(now or pendulum.now("UTC"))

        with self._store.transaction() as txn:
            appointment_type = txn.get_appointment_type(type_id)
            slot = candidate_for_start(
                host_availabilities=txn.get_availabilities(appointment_type.host_ids()),
                appointment_type=appointment_type,
                start=start,
                now=now,
                horizon_days=self._horizon_days,
            )
            receipt = self._commit(txn, appointment_type, slot)

        self._after_commit(receipt)
        return receipt

    def _commit(
        self,
        txn: BookingTransaction,
        appointment_type: AppointmentTypeConfig,
        slot: SlotCandidate,
    ) -> BookingReceipt:
        host_ids = appointment_type.host_ids()
        occupied = appointment_type.buffered(slot.start)
        current = bookings_by_host(txn.get_bookings(host_ids, occupied), host_ids)

        if appointment_type.scheduling_mode is SchedulingMode.ROUND_ROBIN:
            assignment = assign_host(appointment_type, slot, current)
            host_id = assignment.host_id
            next_cursor = assignment.next_cursor
        else:
            if not host_ids or host_ids[0] not in slot.eligible_host_ids:
                raise NoHostAvailableError("The appointment type's host is not eligible for this slot")
            host_id = host_ids[0]
            next_cursor = appointment_type.rotation_cursor
            if not host_is_free(appointment_type, slot.start, current[host_id]):
                raise SlotConflictError(
                    f"{slot.start.to_iso8601_string()} is no longer free for {host_id}"
                )

        booking = BookedInterval(
            host_id=host_id,
            start=slot.start,
            end=appointment_type.slot_end(slot.start),
            booking_id=new_booking_id(),
            buffer_before_minutes=appointment_type.buffer_before_minutes,
            buffer_after_minutes=appointment_type.buffer_after_minutes,
        )

        txn.insert_if_free(booking)

        if appointment_type.scheduling_mode is SchedulingMode.ROUND_ROBIN:
            txn.advance_cursor(appointment_type.type_id, appointment_type.version, next_cursor)

        return BookingReceipt(
            booking=booking,
            type_id=appointment_type.type_id,
            rotation_cursor=next_cursor,
        )

    def _after_commit(self, receipt: BookingReceipt) -> None:
        logger.info(
            "Booked %s for host %s at %s",
            receipt.booking.booking_id,
            receipt.booking.host_id,
            receipt.booking.start.to_iso8601_string(),
        )
        if self._cache is not None:
            self._cache.invalidate_hosts([receipt.booking.host_id])
