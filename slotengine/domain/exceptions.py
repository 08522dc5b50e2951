"""
Domain-specific exception hierarchy for the slot engine.

Generation-time anomalies (disabled days, empty windows, empty teams) never
raise; they degrade into empty results. Only commit-time races and invalid
booking requests are surfaced through these types.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class BookingError(SlotEngineError):
    """Raised when a booking cannot be committed."""

    retryable = False


class SlotConflictError(BookingError):
    """
    The chosen slot overlaps a booking that landed after slots were generated.

    Callers should regenerate slots and retry with a fresh candidate.
    """

    retryable = True


class NoHostAvailableError(BookingError):
    """No eligible team member is still free for the chosen slot."""


class InvalidBookingError(BookingError):
    """The requested start does not describe a bookable slot."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class SnapshotFetchError(SlotEngineError):
    """Raised when availability data cannot be fetched or parsed."""
