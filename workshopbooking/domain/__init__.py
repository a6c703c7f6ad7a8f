"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import Booking, Schedule, SlotAvailability, SlotConflict, StoreSnapshot, Subscriber
from .slot_engine import SlotEngine

__all__ = [
    "Booking",
    "Schedule",
    "SlotAvailability",
    "SlotConflict",
    "StoreSnapshot",
    "Subscriber",
    "SlotEngine",
]
