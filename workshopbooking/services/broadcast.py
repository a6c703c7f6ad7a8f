"""
Broadcasting announcements to every bot subscriber.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Protocol, Union

from ..domain.exceptions import BookingValidationError, NotificationError
from ..domain.models import Subscriber

logger = logging.getLogger(__name__)


class MessengerProtocol(Protocol):
    """Protocol describing the chat client behaviour needed by the bot services."""

    def send_message(self, chat_id: Union[int, str], text: str, photo: Optional[str] = None) -> None:
        """Send text (or a captioned photo); raise NotificationError on failure."""


class SubscriberStoreProtocol(Protocol):
    def upsert(self, subscriber: Subscriber) -> None:
        """Insert or replace a subscriber by user id."""

    def all(self) -> List[Subscriber]:
        """Return every subscriber."""


@dataclass(frozen=True)
class BroadcastReport:
    sent: int
    failed: int
    total: int


class BroadcastService:
    """Sends one message to every subscriber, pausing between sends."""

    def __init__(
        self,
        subscribers: SubscriberStoreProtocol,
        messenger: MessengerProtocol,
        delay_seconds: float = 0.05,
    ) -> None:
        self._subscribers = subscribers
        self._messenger = messenger
        self._delay_seconds = delay_seconds

    def broadcast(self, text: str, photo: Optional[str] = None) -> BroadcastReport:
        """
        Send ``text`` (optionally as a photo caption) to all subscribers.

        Raises:
            BookingValidationError: If the message is empty
        """
        if not text or not text.strip():
            raise BookingValidationError("Message is required")

        recipients = self._subscribers.all()
        if not recipients:
            logger.info("No subscribers yet, nothing to broadcast")
            return BroadcastReport(sent=0, failed=0, total=0)

        sent = 0
        failed = 0

        for subscriber in recipients:
            try:
                self._messenger.send_message(subscriber.chat_id, text, photo=photo)
                sent += 1
            except NotificationError as e:
                # Best-effort: don't stop sending to other subscribers.
                logger.warning("Failed to send broadcast to chat_id=%s (%s)", subscriber.chat_id, e)
                failed += 1

            # Stay under the Bot API rate limit.
            if self._delay_seconds:
                time.sleep(self._delay_seconds)

        logger.info("Broadcast finished: sent=%d failed=%d total=%d", sent, failed, len(recipients))
        return BroadcastReport(sent=sent, failed=failed, total=len(recipients))
