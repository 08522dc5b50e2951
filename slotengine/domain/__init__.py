"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    BookingError,
    InvalidBookingError,
    NoHostAvailableError,
    SlotConflictError,
    SlotEngineError,
    SnapshotFetchError,
)
from .models import (
    AppointmentTypeConfig,
    Assignment,
    BookedInterval,
    BookingReceipt,
    DayRule,
    GenerationWindow,
    SchedulingMode,
    SlotCandidate,
    TimeRange,
    WeeklyAvailability,
)
from .round_robin import assign_host
from .slot_generator import SlotGenerator, generate_slots

__all__ = [
    "AppointmentTypeConfig",
    "Assignment",
    "BookedInterval",
    "BookingError",
    "BookingReceipt",
    "DayRule",
    "GenerationWindow",
    "InvalidBookingError",
    "NoHostAvailableError",
    "SchedulingMode",
    "SlotCandidate",
    "SlotConflictError",
    "SlotEngineError",
    "SlotGenerator",
    "SnapshotFetchError",
    "TimeRange",
    "WeeklyAvailability",
    "assign_host",
    "generate_slots",
]
