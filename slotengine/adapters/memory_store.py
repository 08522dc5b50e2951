"""
In-process booking store.

Serves as the reference implementation of the booking store contract and as
the backing store for tests and the CLI. Transactions are serialised with a
single lock, and writes are staged until the transaction block exits
cleanly, so a failed commit leaves no trace.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence

from ..domain.exceptions import SlotConflictError
from ..domain.models import (
    AppointmentTypeConfig,
    BookedInterval,
    TimeRange,
    WeeklyAvailability,
)

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """
    Thread-safe store for availability, appointment types and bookings.

    Availability and appointment types are owned by external editors; only
    bookings and the rotation cursor/version are written through
    transactions.
    """

    def __init__(
        self,
        availabilities: Mapping[str, WeeklyAvailability],
        appointment_types: Iterable[AppointmentTypeConfig],
        bookings: Iterable[BookedInterval] = (),
    ):
        self._lock = threading.RLock()
        self._availabilities: Dict[str, WeeklyAvailability] = dict(availabilities)
        self._types: Dict[str, AppointmentTypeConfig] = {
            appointment_type.type_id: appointment_type for appointment_type in appointment_types
        }
        self._bookings: List[BookedInterval] = list(bookings)

    # Snapshot reads

    def get_appointment_type(self, type_id: str) -> AppointmentTypeConfig:
        with self._lock:
            try:
                return self._types[type_id]
            except KeyError:
                raise KeyError(f"Unknown appointment type: {type_id}") from None

    def list_appointment_types(self) -> List[AppointmentTypeConfig]:
        with self._lock:
            return list(self._types.values())

    def get_availabilities(self, host_ids: Sequence[str]) -> Dict[str, WeeklyAvailability]:
        """Availability per host; hosts that never set one get Mon-Fri 09:00-17:00 UTC."""
        with self._lock:
            availabilities = {}
            for host_id in host_ids:
                availability = self._availabilities.get(host_id)
                if availability is None:
                    logger.debug("Host %s has no availability, using the default week", host_id)
                    availability = WeeklyAvailability.default()
                availabilities[host_id] = availability
            return availabilities

    def get_bookings(self, host_ids: Sequence[str], span: TimeRange) -> Dict[str, List[BookedInterval]]:
        with self._lock:
            return _select(self._bookings, host_ids, span)

    def all_bookings(self) -> List[BookedInterval]:
        with self._lock:
            return sorted(self._bookings, key=lambda booking: booking.start)

    # Owner edits

    def set_availability(self, host_id: str, availability: WeeklyAvailability) -> None:
        with self._lock:
            self._availabilities[host_id] = availability

    def put_appointment_type(self, appointment_type: AppointmentTypeConfig) -> None:
        with self._lock:
            self._types[appointment_type.type_id] = appointment_type

    def cancel(self, booking_id: str) -> bool:
        """Remove a booking; cancellation frees its interval for new bookings."""
        with self._lock:
            remaining = [b for b in self._bookings if b.booking_id != booking_id]
            if len(remaining) == len(self._bookings):
                return False
            self._persist(remaining, self._types)
            self._bookings = remaining
            return True

    # Transactions

    @contextmanager
    def transaction(self) -> Iterator["_Transaction"]:
        with self._lock:
            txn = _Transaction(self)
            yield txn
            self._apply(txn)

    def _apply(self, txn: "_Transaction") -> None:
        if not txn.staged_bookings and not txn.staged_types:
            return

        bookings = self._bookings + txn.staged_bookings
        types = {**self._types, **txn.staged_types}

        # Nothing becomes visible unless the new state was saved.
        self._persist(bookings, types)
        self._bookings, self._types = bookings, types

        logger.debug(
            "Committed %d booking(s), %d cursor update(s)",
            len(txn.staged_bookings),
            len(txn.staged_types),
        )

    def _persist(
        self,
        bookings: List[BookedInterval],
        types: Mapping[str, AppointmentTypeConfig],
    ) -> None:
        """
        Hook for durable subclasses, called with the lock held before the
        new state replaces the current one. Raising aborts the change.
        """


class _Transaction:
    """Staged view over the store while its lock is held."""

    def __init__(self, store: InMemoryBookingStore):
        self._store = store
        self.staged_bookings: List[BookedInterval] = []
        self.staged_types: Dict[str, AppointmentTypeConfig] = {}

    def get_appointment_type(self, type_id: str) -> AppointmentTypeConfig:
        if type_id in self.staged_types:
            return self.staged_types[type_id]
        return self._store.get_appointment_type(type_id)

    def get_availabilities(self, host_ids: Sequence[str]) -> Dict[str, WeeklyAvailability]:
        return self._store.get_availabilities(host_ids)

    def get_bookings(self, host_ids: Sequence[str], span: TimeRange) -> Dict[str, List[BookedInterval]]:
        return _select(self._store._bookings + self.staged_bookings, host_ids, span)

    def insert_if_free(self, booking: BookedInterval) -> None:
        clashes = self.get_bookings([booking.host_id], booking.occupied()).get(booking.host_id)
        if clashes:
            raise SlotConflictError(
                f"Host {booking.host_id} already has a booking overlapping "
                f"{booking.start.to_iso8601_string()}"
            )
        self.staged_bookings.append(booking)

    def advance_cursor(self, type_id: str, expected_version: int, new_cursor: int) -> None:
        current = self.get_appointment_type(type_id)
        if current.version != expected_version:
            raise SlotConflictError(
                f"Appointment type {type_id} changed (version {current.version}, "
                f"expected {expected_version})"
            )
        self.staged_types[type_id] = replace(
            current,
            rotation_cursor=new_cursor,
            version=current.version + 1,
        )


def _select(
    bookings: Iterable[BookedInterval],
    host_ids: Sequence[str],
    span: TimeRange,
) -> Dict[str, List[BookedInterval]]:
    wanted = set(host_ids)
    selected: Dict[str, List[BookedInterval]] = {host_id: [] for host_id in host_ids}
    for booking in bookings:
        if booking.host_id not in wanted or booking.end <= booking.start:
            continue
        if booking.occupied().overlaps(span):
            selected[booking.host_id].append(booking)
    for host_bookings in selected.values():
        host_bookings.sort(key=lambda booking: booking.start)
    return selected
