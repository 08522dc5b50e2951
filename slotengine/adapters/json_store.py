"""
Booking store persisted to a JSON file.

Availability and appointment types come from the configuration; the file
only holds what commits write: bookings and each type's rotation cursor.
"""

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import pendulum

from ..domain.exceptions import SlotEngineError
from ..domain.models import AppointmentTypeConfig, BookedInterval, WeeklyAvailability
from .memory_store import InMemoryBookingStore

logger = logging.getLogger(__name__)


class JsonBookingStore(InMemoryBookingStore):
    """
    File-backed store for single-process use such as the CLI.

    Every successful commit rewrites the file atomically (write to a
    temporary file, then rename).
    """

    def __init__(
        self,
        data_file: Path,
        availabilities: Mapping[str, WeeklyAvailability],
        appointment_types: Iterable[AppointmentTypeConfig],
    ):
        self.data_file = Path(data_file)
        state = self._load_state()

        cursors = state.get("cursors", {})
        types = []
        for appointment_type in appointment_types:
            saved = cursors.get(appointment_type.type_id)
            if saved:
                appointment_type = replace(
                    appointment_type,
                    rotation_cursor=int(saved.get("rotationCursor", 0)),
                    version=int(saved.get("version", 0)),
                )
            types.append(appointment_type)

        super().__init__(
            availabilities=availabilities,
            appointment_types=types,
            bookings=[_booking_from_json(item) for item in state.get("bookings", [])],
        )

    def _load_state(self) -> Dict[str, Any]:
        """Load bookings and cursors; a missing file means an empty store."""
        if not self.data_file.exists():
            return {}

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise SlotEngineError(f"Invalid booking data in {self.data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise SlotEngineError(f"Booking data in {self.data_file} must be a JSON object")

        return data

    def _persist(
        self,
        bookings: List[BookedInterval],
        types: Mapping[str, AppointmentTypeConfig],
    ) -> None:
        state = {
            "bookings": [_booking_to_json(b) for b in bookings],
            "cursors": {
                type_id: {
                    "rotationCursor": appointment_type.rotation_cursor,
                    "version": appointment_type.version,
                }
                for type_id, appointment_type in types.items()
            },
        }

        tmp_file = self.data_file.with_suffix(self.data_file.suffix + ".tmp")
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_file, self.data_file)
        except OSError as exc:
            raise SlotEngineError(f"Could not save bookings to {self.data_file}: {exc}") from exc

        logger.debug("Saved %d booking(s) to %s", len(bookings), self.data_file)


def _booking_to_json(booking: BookedInterval) -> Dict[str, Any]:
    return {
        "bookingId": booking.booking_id,
        "hostId": booking.host_id,
        "startsAt": booking.start.to_iso8601_string(),
        "endsAt": booking.end.to_iso8601_string(),
        "bufferBeforeMinutes": booking.buffer_before_minutes,
        "bufferAfterMinutes": booking.buffer_after_minutes,
    }


def _booking_from_json(item: Dict[str, Any]) -> BookedInterval:
    try:
        return BookedInterval(
            host_id=item["hostId"],
            start=pendulum.parse(item["startsAt"]).in_timezone("UTC"),
            end=pendulum.parse(item["endsAt"]).in_timezone("UTC"),
            booking_id=item.get("bookingId", ""),
            buffer_before_minutes=int(item.get("bufferBeforeMinutes", 0)),
            buffer_after_minutes=int(item.get("bufferAfterMinutes", 0)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise SlotEngineError(f"Invalid booking entry {item!r}: {exc}") from exc

