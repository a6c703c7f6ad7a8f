"""
Core business logic for slot allocation and conflict detection.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no storage, no I/O).
"""

from datetime import date as _date
from typing import Iterable, List, Optional, Sequence, Set

from .dates import slot_hour, slot_label
from .exceptions import BookingValidationError
from .models import Booking, Schedule, SlotAvailability, SlotConflict


class SlotEngine:
    """
    Decides which hours of a class day are taken and whether a request fits.

    Algorithm:
    1. Keep only bookings for the requested date
    2. Expand each booking into the hour labels it covers
    3. Union those labels into the occupied set
    4. Slots are the schedule labels minus the occupied set, in schedule order
    """

    def __init__(self, schedule: Schedule):
        self.schedule = schedule

    @property
    def slot_labels(self) -> List[str]:
        return self.schedule.slot_labels

    def expand(self, start_time: str, hours: int) -> List[str]:
        """
        Expand a booking interval into the hour labels it covers.

        Example: ("10:00", 3) -> ["10:00", "11:00", "12:00"]
        """
        start_hour = slot_hour(start_time)
        return [slot_label(start_hour + i) for i in range(hours)]

    def occupied_hours(self, bookings: Iterable[Booking], booking_date: _date) -> Set[str]:
        """
        Collect every hour label taken by a booking on ``booking_date``.

        Args:
            bookings: Full booking list (any dates)
            booking_date: The class day to inspect

        Returns:
            Unordered set of occupied hour labels
        """
        occupied: Set[str] = set()

        for booking in bookings:
            if booking.booking_date != booking_date:
                continue
            occupied.update(self.expand(booking.start_time, booking.hours))

        return occupied

    def available_slots(self, bookings: Iterable[Booking], booking_date: _date) -> List[str]:
        """Return free slot labels for ``booking_date`` in chronological order."""
        occupied = self.occupied_hours(bookings, booking_date)
        return [label for label in self.slot_labels if label not in occupied]

    def max_bookable_hours(
        self,
        start_time: str,
        available_slots: Sequence[str],
        closing_hour: Optional[int] = None
    ) -> int:
        """
        Count how many consecutive hours can be booked from ``start_time``.

        Walks forward hour by hour and stops at the first occupied hour or at
        the last bookable hour before closing. The result never proposes a
        booking that runs past closing.

        Args:
            start_time: Chosen start slot label
            available_slots: Free slot labels for the date
            closing_hour: Hour at which the window closes (defaults to schedule)

        Returns:
            Number of bookable hours, 0 if the start slot itself is taken
        """
        if closing_hour is None:
            closing_hour = self.schedule.closing_hour

        start_hour = slot_hour(start_time)
        free = set(available_slots)
        max_hours = 0

        for i in range(self.schedule.slot_count):
            hour = start_hour + i
            if slot_label(hour) in free and hour <= closing_hour - 1:
                max_hours += 1
            else:
                break

        hours_until_close = max(closing_hour - start_hour, 0)
        return min(max_hours, hours_until_close)

    def validate_request(
        self,
        bookings: Iterable[Booking],
        request: Booking
    ) -> Optional[SlotConflict]:
        """
        Check a new booking request against existing bookings.

        Past dates are accepted; enforcing future dates belongs to the caller.

        Args:
            bookings: Existing bookings (any dates)
            request: The booking to be created

        Returns:
            The first colliding hour, or None if the request can be granted

        Raises:
            BookingValidationError: If the start slot or hour count is invalid
        """
        if request.start_time not in self.slot_labels:
            raise BookingValidationError(
                f"Start time {request.start_time} is not one of {', '.join(self.slot_labels)}"
            )
        if request.hours < 1:
            raise BookingValidationError(f"Hours must be at least 1, got {request.hours}")

        occupied = self.occupied_hours(bookings, request.booking_date)
        closing_hour = self.schedule.closing_hour

        for label in self.expand(request.start_time, request.hours):
            if slot_hour(label) >= closing_hour:
                return SlotConflict(hour=label, reason="after_closing")
            if label in occupied:
                return SlotConflict(hour=label, reason="occupied")

        return None

    def availability(self, bookings: Iterable[Booking], booking_date: _date) -> List[SlotAvailability]:
        """Per-slot view of a date: whether it is free and how long it can run."""
        bookings = list(bookings)
        free = self.available_slots(bookings, booking_date)

        return [
            SlotAvailability(
                start_time=label,
                available=label in free,
                max_hours=self.max_bookable_hours(label, free)
            )
            for label in self.slot_labels
        ]

    def total_price(self, hours: int) -> int:
        return hours * self.schedule.price_per_hour
