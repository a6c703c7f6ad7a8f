"""
Booking events and their delivery to notification recipients.

Creating a booking only appends an event to the outbox; the dispatcher drains
it separately so a slow or failing messenger never affects the booking.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Protocol, Sequence

from ..domain.exceptions import NotificationError
from ..domain.models import Booking

logger = logging.getLogger(__name__)


class NotifierProtocol(Protocol):
    """Protocol describing the messenger behaviour needed by the dispatcher."""

    def notify(self, booking: Booking, recipient: str) -> bool:
        """Deliver a booking notice to one recipient; return whether it was delivered."""


@dataclass(frozen=True)
class BookingCreated:
    """Emitted after a booking has been persisted."""
    booking: Booking


@dataclass(frozen=True)
class DispatchReport:
    sent: int = 0
    failed: int = 0


class Outbox:
    """Thread-safe in-process queue of pending booking events."""

    def __init__(self) -> None:
        self._events: Deque[BookingCreated] = deque()
        self._lock = threading.Lock()

    def publish(self, event: BookingCreated) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> List[BookingCreated]:
        """Remove and return every pending event, oldest first."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class NotificationDispatcher:
    """
    Delivers pending booking events to every configured recipient.

    Delivery is best-effort: failures are logged and counted, never raised.
    """

    def __init__(
        self,
        outbox: Outbox,
        notifier: NotifierProtocol,
        recipients: Sequence[str],
    ) -> None:
        self._outbox = outbox
        self._notifier = notifier
        self._recipients = list(recipients)

    def dispatch_pending(self) -> DispatchReport:
        sent = 0
        failed = 0

        for event in self._outbox.drain():
            for recipient in self._recipients:
                if self._deliver(event.booking, recipient):
                    sent += 1
                else:
                    failed += 1

        if sent or failed:
            logger.info("Notifications dispatched: sent=%d failed=%d", sent, failed)
        return DispatchReport(sent=sent, failed=failed)

    def _deliver(self, booking: Booking, recipient: str) -> bool:
        try:
            return bool(self._notifier.notify(booking, recipient))
        except NotificationError as e:
            logger.warning(
                "Failed to notify recipient=%s about booking=%s (%s)", recipient, booking.id, e
            )
            return False
