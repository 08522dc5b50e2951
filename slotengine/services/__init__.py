"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import BookingService, BookingStore, BookingTransaction
from .slot_cache import SlotCache

__all__ = ["BookingService", "BookingStore", "BookingTransaction", "SlotCache"]
