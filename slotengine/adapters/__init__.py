"""
Adapters layer - Booking stores and the scheduler API client.
"""

from .json_store import JsonBookingStore
from .memory_store import InMemoryBookingStore
from .scheduler_api_client import BookingLinkSnapshot, SchedulerApiClient

__all__ = ["BookingLinkSnapshot", "InMemoryBookingStore", "JsonBookingStore", "SchedulerApiClient"]
