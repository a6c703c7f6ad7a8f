"""
In-memory stores for tests and for running without external services.
"""

import threading
from typing import Dict, Iterable, List, Optional

from ..domain.exceptions import StaleWriteError
from ..domain.models import Booking, StoreSnapshot, Subscriber


class InMemoryBookingStore:
    """
    Keeps the booking list in process memory.

    Compare-and-set is guarded by a lock so concurrent writers in the same
    process cannot both replace the same version.
    """

    def __init__(self, bookings: Optional[Iterable[Booking]] = None):
        self._bookings: List[Booking] = list(bookings or [])
        self._version = 0
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def get(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(bookings=list(self._bookings), version=self._version)

    def set(self, bookings: List[Booking], expected_version: int) -> int:
        with self._lock:
            if self._version != expected_version:
                raise StaleWriteError(
                    f"Expected version {expected_version}, store is at {self._version}"
                )
            self._bookings = list(bookings)
            self._version += 1
            return self._version


class InMemorySubscriberStore:
    """Subscribers keyed by Telegram user id."""

    def __init__(self, subscribers: Optional[Iterable[Subscriber]] = None):
        self._subscribers: Dict[int, Subscriber] = {
            subscriber.user_id: subscriber for subscriber in subscribers or []
        }
        self._lock = threading.Lock()

    def upsert(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers[subscriber.user_id] = subscriber

    def all(self) -> List[Subscriber]:
        with self._lock:
            return list(self._subscribers.values())
