"""
Client for the CRM scheduler API's public booking-link endpoint.

Fetches a read-only snapshot (appointment type, host availability, existing
bookings, window) and maps it onto the domain models so slots can be
generated locally.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import SnapshotFetchError
from ..domain.intervals import clamp, is_valid_timezone
from ..domain.models import (
    MAX_BUFFER_MINUTES,
    AppointmentTypeConfig,
    BookedInterval,
    DayRule,
    GenerationWindow,
    SchedulingMode,
    WeeklyAvailability,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingLinkSnapshot:
    """Everything needed to generate slots for one booking link."""
    host_id: str
    appointment_type: AppointmentTypeConfig
    availability: WeeklyAvailability
    booked: List[BookedInterval]
    window_from: DateTime
    window_to: DateTime
    name: str = ""

    def host_availabilities(self) -> Dict[str, WeeklyAvailability]:
        return {self.host_id: self.availability}

    def booked_by_host(self) -> Dict[str, List[BookedInterval]]:
        return {self.host_id: list(self.booked)}

    def window(self, step_minutes: int = 15, max_slots: int = 48) -> GenerationWindow:
        return GenerationWindow(
            from_instant=self.window_from,
            to_instant=self.window_to,
            step_minutes=step_minutes,
            max_slots=max_slots,
        )


class SchedulerApiClient:
    """
    Reads booking-link snapshots over HTTP.

    Uses ``GET /api/scheduler/public/booking-links/{slug}``.
    """

    BOOKING_LINK_PATH = "/api/scheduler/public/booking-links/{slug}"

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
        """
        Initialize the client.

        Args:
            base_url: API origin, e.g. ``https://crm.example.com``
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_booking_link(self, slug: str, window_days: int = 14) -> BookingLinkSnapshot:
        """
        Fetch the snapshot for a booking link.

        Raises:
            SnapshotFetchError: If the request fails or the payload is malformed
        """
        url = self.base_url + self.BOOKING_LINK_PATH.format(slug=slug)

        try:
            response = self.session.get(
                url,
                params={"windowDays": clamp(window_days, 1, 60)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            raise SnapshotFetchError(f"Failed to fetch booking link '{slug}': {e}") from e
        except ValueError as e:
            raise SnapshotFetchError(f"Booking link '{slug}' returned invalid JSON: {e}") from e

        if not isinstance(body, dict) or body.get("error") or not isinstance(body.get("data"), dict):
            raise SnapshotFetchError(
                f"Booking link '{slug}' returned an error: {body.get('error') if isinstance(body, dict) else body!r}"
            )

        return self._parse_snapshot(slug, body["data"])

    def _parse_snapshot(self, slug: str, data: Dict[str, Any]) -> BookingLinkSnapshot:
        """
        Parse the endpoint payload into domain models.

        Payload format:
        {
            "type": {"_id": "...", "name": "...", "durationMinutes": 30,
                     "bufferBeforeMinutes": 0, "bufferAfterMinutes": 0},
            "availability": {"timeZone": "Europe/Berlin",
                             "weekly": [{"day": 1, "enabled": true,
                                         "startMin": 540, "endMin": 1020}]},
            "existing": [{"startsAt": "...", "endsAt": "..."}],
            "window": {"from": "...", "to": "..."}
        }
        """
        try:
            type_data = data["type"]
            availability_data = data.get("availability") or {}
            window_data = data["window"]

            host_id = str(type_data.get("ownerUserId") or slug)
            appointment_type = AppointmentTypeConfig(
                type_id=str(type_data.get("_id") or slug),
                duration_minutes=int(type_data.get("durationMinutes") or 30),
                buffer_before_minutes=clamp(int(type_data.get("bufferBeforeMinutes") or 0), 0, MAX_BUFFER_MINUTES),
                buffer_after_minutes=clamp(int(type_data.get("bufferAfterMinutes") or 0), 0, MAX_BUFFER_MINUTES),
                scheduling_mode=SchedulingMode.SINGLE,
                team_host_ids=(host_id,),
            )

            time_zone = availability_data.get("timeZone") or "UTC"
            if not is_valid_timezone(time_zone):
                raise ValueError(f"unknown timezone {time_zone!r}")

            availability = WeeklyAvailability(
                time_zone=time_zone,
                days=tuple(
                    DayRule.clamped(
                        weekday=int(rule["day"]),
                        enabled=bool(rule.get("enabled")),
                        start_minute=int(rule.get("startMin", 0)),
                        end_minute=int(rule.get("endMin", 0)),
                    )
                    for rule in availability_data.get("weekly", [])
                ),
            )

            window_from = self._parse_datetime(window_data["from"])
            window_to = self._parse_datetime(window_data["to"])
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotFetchError(f"Malformed booking link payload for '{slug}': {e}") from e

        booked: List[BookedInterval] = []
        for item in data.get("existing", []):
            try:
                start = self._parse_datetime(item["startsAt"])
                end = self._parse_datetime(item["endsAt"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unparsable booking %r: %s", item, e)
                continue

            if end <= start:
                logger.warning("Skipping booking %r: it does not end after it starts", item)
                continue

            booked.append(BookedInterval(host_id=host_id, start=start, end=end))

        return BookingLinkSnapshot(
            host_id=host_id,
            appointment_type=appointment_type,
            availability=availability,
            booked=booked,
            window_from=window_from,
            window_to=window_to,
            name=str(type_data.get("name") or slug),
        )

    @staticmethod
    def _parse_datetime(value: str) -> DateTime:
        dt = pendulum.parse(value)
        if isinstance(dt, DateTime):
            return dt.in_timezone("UTC")
        raise ValueError(f"Could not parse datetime: {value}")
