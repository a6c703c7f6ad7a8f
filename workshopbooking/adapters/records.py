"""
Conversion between stored JSON records and domain bookings.
"""

from typing import Any, Iterable, List

from ..domain.exceptions import BookingValidationError, StoreUnavailableError
from ..domain.models import Booking


def bookings_from_records(records: Iterable[Any]) -> List[Booking]:
    """
    Parse stored records into bookings.

    The stored list is written back whole on every change, so a record that
    cannot be parsed makes the list unusable rather than being dropped.

    Raises:
        StoreUnavailableError: If any record is not a valid booking
    """
    bookings: List[Booking] = []

    for record in records:
        if not isinstance(record, dict):
            raise StoreUnavailableError(f"Stored booking is not an object: {record!r}")
        try:
            bookings.append(Booking.from_record(record))
        except BookingValidationError as e:
            raise StoreUnavailableError(
                f"Stored booking {record.get('id')!r} is invalid: {e}"
            ) from e

    return bookings


def bookings_to_records(bookings: Iterable[Booking]) -> List[dict]:
    return [booking.to_record() for booking in bookings]
