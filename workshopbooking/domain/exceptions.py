"""
Domain-specific exception hierarchy for the workshop booking application.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class BookingValidationError(BookingError):
    """Raised when a booking request is missing fields or is malformed."""


class SlotConflictError(BookingError):
    """Raised when a requested interval cannot be granted."""

    def __init__(self, hour: str, reason: str = "occupied"):
        self.hour = hour
        self.reason = reason
        if reason == "after_closing":
            message = f"Slot {hour} is outside the operating window"
        else:
            message = f"Time slot {hour} is already booked"
        super().__init__(message)


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist in the store."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class StoreUnavailableError(BookingError):
    """Raised when the record store cannot be reached or returns garbage."""


class StaleWriteError(BookingError):
    """Raised by a store when the list changed since it was read."""


class ConcurrentModificationError(BookingError):
    """Raised when a write keeps losing against concurrent writers."""


class NotificationError(BookingError):
    """Raised when a message cannot be delivered."""
