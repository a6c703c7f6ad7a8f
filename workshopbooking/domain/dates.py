"""
Date and slot-label helpers shared by the domain and the CLI.
"""

from datetime import date as _date

import pendulum
from pendulum import Date

from .exceptions import BookingValidationError

DATE_FORMAT = "YYYY-MM-DD"


def as_date(value: _date) -> Date:
    """Coerce a stdlib date (or pendulum DateTime) into a pendulum Date."""
    if isinstance(value, Date):
        return value
    return Date(value.year, value.month, value.day)


def parse_date(value: str) -> Date:
    """
    Parse a ``YYYY-MM-DD`` string into a pendulum Date.

    Raises:
        BookingValidationError: If the string is not a valid date
    """
    try:
        return pendulum.from_format(str(value).strip(), DATE_FORMAT).date()
    except ValueError as e:
        raise BookingValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def today(tz: str) -> Date:
    """Return the current calendar date in the given timezone."""
    return pendulum.today(tz).date()


def next_class_date(current: _date, weekday: int = pendulum.SATURDAY) -> Date:
    """
    Return the next class day strictly after ``current``.

    On the class day itself the following week's date is returned.
    """
    return as_date(current).next(pendulum.WeekDay(weekday))


def is_booking_open(current: _date, weekday: int = pendulum.FRIDAY) -> bool:
    """Bookings for the coming class open on a single weekday."""
    return as_date(current).day_of_week == weekday


def format_date(value: _date) -> str:
    """Format a date in Russian long form, e.g. ``суббота, 24 октября 2026``."""
    return as_date(value).format("dddd, D MMMM YYYY", locale="ru")


def slot_label(hour: int) -> str:
    """Hour of day to slot label (``10`` -> ``"10:00"``)."""
    return f"{hour:02d}:00"


def slot_hour(label: str) -> int:
    """
    Slot label to hour of day (``"10:00"`` -> ``10``).

    Raises:
        BookingValidationError: If the label is not ``H:MM``-shaped
    """
    try:
        return int(str(label).split(":")[0])
    except ValueError as e:
        raise BookingValidationError(f"Invalid start time '{label}'") from e


def end_time(start_time: str, hours: int) -> str:
    """Label of the hour at which a booking ends."""
    return slot_label(slot_hour(start_time) + hours)
