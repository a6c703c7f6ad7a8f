"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import BookingService, BookingStoreProtocol
from .bot_commands import BotCommandHandler
from .broadcast import BroadcastReport, BroadcastService
from .outbox import BookingCreated, DispatchReport, NotificationDispatcher, Outbox

__all__ = [
    "BookingService",
    "BookingStoreProtocol",
    "BotCommandHandler",
    "BroadcastReport",
    "BroadcastService",
    "BookingCreated",
    "DispatchReport",
    "NotificationDispatcher",
    "Outbox",
]
