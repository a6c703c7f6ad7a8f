"""
Domain models for bookings and the fixed daily schedule.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import date as _date
from typing import Any, Dict, List, Mapping, Optional

import pendulum
from pendulum import Date, DateTime

from .dates import as_date, end_time, parse_date, slot_label
from .exceptions import BookingValidationError

REQUIRED_FIELDS = ("id", "firstName", "startTime", "hours", "bookingDate")
GENDERS = ("male", "female")

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_id() -> str:
    """Generate a booking id: base36 milliseconds followed by a random suffix."""
    return _to_base36(int(time.time() * 1000)) + secrets.token_hex(5)


@dataclass(frozen=True)
class Schedule:
    """
    The fixed daily operating window.

    Invariant: slots are ``slot_count`` consecutive one-hour starts beginning
    at ``opening_hour``; the window closes at ``opening_hour + slot_count``.
    """
    opening_hour: int = 10
    slot_count: int = 4
    price_per_hour: int = 700

    def __post_init__(self):
        if self.slot_count < 1:
            raise ValueError("slot_count must be at least 1")
        if self.opening_hour < 0 or self.closing_hour > 24:
            raise ValueError(
                f"Operating window {self.opening_hour}-{self.closing_hour} does not fit in a day"
            )

    @property
    def closing_hour(self) -> int:
        return self.opening_hour + self.slot_count

    @property
    def slot_labels(self) -> List[str]:
        """Slot labels in chronological order."""
        return [slot_label(self.opening_hour + i) for i in range(self.slot_count)]

    @property
    def hours_options(self) -> List[int]:
        return list(range(1, self.slot_count + 1))


@dataclass(frozen=True)
class Booking:
    """
    A single reservation of ``hours`` consecutive slots on ``booking_date``.

    Bookings are never mutated after creation.
    """
    id: str
    first_name: str
    start_time: str
    hours: int
    booking_date: Date
    last_name: str = ""
    age: Optional[int] = None
    gender: Optional[str] = None
    parent_phone: str = ""
    total_price: Optional[int] = None
    created_at: DateTime = field(default_factory=pendulum.now)

    @property
    def end_time(self) -> str:
        return end_time(self.start_time, self.hours)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Booking":
        """
        Build a booking from its stored (camelCase) representation.

        The legacy single ``name`` key is accepted in place of ``firstName``.

        Raises:
            BookingValidationError: If required fields are missing or malformed
        """
        data = {key: value.strip() if isinstance(value, str) else value for key, value in record.items()}
        if not data.get("firstName") and data.get("name"):
            data["firstName"] = data["name"]

        missing = [key for key in REQUIRED_FIELDS if data.get(key) in (None, "")]
        if missing:
            raise BookingValidationError(f"Missing required fields: {', '.join(missing)}")

        hours = data["hours"]
        if isinstance(hours, bool) or (isinstance(hours, float) and not hours.is_integer()):
            raise BookingValidationError(f"Invalid hours value: {hours!r}")
        try:
            hours = int(hours)
        except (TypeError, ValueError) as e:
            raise BookingValidationError(f"Invalid hours value: {hours!r}") from e

        booking_date = data["bookingDate"]
        if isinstance(booking_date, _date):
            booking_date = as_date(booking_date)
        else:
            booking_date = parse_date(booking_date)

        age = data.get("age")
        if age not in (None, ""):
            try:
                age = int(age)
            except (TypeError, ValueError) as e:
                raise BookingValidationError(f"Invalid age value: {age!r}") from e
        else:
            age = None

        gender = data.get("gender") or None
        if gender is not None and gender not in GENDERS:
            raise BookingValidationError(f"Invalid gender value: {gender!r}")

        total_price = data.get("totalPrice")
        if total_price is not None:
            try:
                total_price = int(total_price)
            except (TypeError, ValueError) as e:
                raise BookingValidationError(f"Invalid totalPrice value: {total_price!r}") from e

        created_at = data.get("createdAt")
        if isinstance(created_at, DateTime):
            pass
        elif created_at:
            try:
                parsed = pendulum.parse(str(created_at))
            except ValueError as e:
                raise BookingValidationError(f"Invalid createdAt value: {created_at!r}") from e
            if not isinstance(parsed, DateTime):
                raise BookingValidationError(f"Invalid createdAt value: {created_at!r}")
            created_at = parsed
        else:
            created_at = pendulum.now()

        return cls(
            id=str(data["id"]),
            first_name=str(data["firstName"]).strip(),
            last_name=str(data.get("lastName") or "").strip(),
            age=age,
            gender=gender,
            parent_phone=str(data.get("parentPhone") or "").strip(),
            start_time=str(data["startTime"]).strip(),
            hours=hours,
            total_price=total_price,
            created_at=created_at,
            booking_date=booking_date,
        )

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase, JSON-safe) representation."""
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "age": self.age,
            "gender": self.gender,
            "parentPhone": self.parent_phone,
            "startTime": self.start_time,
            "hours": self.hours,
            "totalPrice": self.total_price,
            "createdAt": self.created_at.to_iso8601_string(),
            "bookingDate": self.booking_date.to_date_string(),
        }


@dataclass(frozen=True)
class SlotConflict:
    """The first hour of a request that cannot be granted."""
    hour: str
    reason: str = "occupied"  # "occupied" or "after_closing"


@dataclass(frozen=True)
class SlotAvailability:
    """Availability of one slot label on a given date."""
    start_time: str
    available: bool
    max_hours: int


@dataclass(frozen=True)
class Subscriber:
    """A Telegram user who has talked to the bot."""
    user_id: int
    chat_id: int
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    subscribed_at: DateTime = field(default_factory=pendulum.now)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Subscriber":
        subscribed_at = record.get("subscribedAt")
        return cls(
            user_id=int(record["id"]),
            chat_id=int(record["chatId"]),
            first_name=record.get("firstName") or "",
            last_name=record.get("lastName") or "",
            username=record.get("username") or "",
            subscribed_at=pendulum.parse(subscribed_at) if subscribed_at else pendulum.now(),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "chatId": self.chat_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "subscribedAt": self.subscribed_at.to_iso8601_string(),
        }


@dataclass(frozen=True)
class StoreSnapshot:
    """The booking list as read from a store, with its version token."""
    bookings: List[Booking]
    version: int = 0
