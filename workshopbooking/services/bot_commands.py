"""
Handling of incoming Telegram bot updates.

Every user who writes to the bot is remembered as a subscriber, then gets a
reply for the known commands or a short hint otherwise.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..adapters.messages import (
    WorkshopInfo,
    render_help,
    render_hint,
    render_info,
    render_price,
    render_start,
)
from ..domain.exceptions import NotificationError, StoreUnavailableError
from ..domain.models import Schedule, Subscriber
from .broadcast import MessengerProtocol, SubscriberStoreProtocol

logger = logging.getLogger(__name__)


class BotCommandHandler:
    def __init__(
        self,
        subscribers: SubscriberStoreProtocol,
        messenger: MessengerProtocol,
        workshop: WorkshopInfo,
        schedule: Schedule,
    ) -> None:
        self._subscribers = subscribers
        self._messenger = messenger
        self._workshop = workshop
        self._schedule = schedule

    def reply_for(self, text: str) -> str:
        command = text.strip().split(maxsplit=1)[0] if text.strip() else ""
        # "/start@SomeBot" addresses the bot explicitly in group chats.
        command = command.split("@", 1)[0]

        if command == "/start":
            return render_start(self._workshop, self._schedule)
        if command == "/help":
            return render_help(self._workshop)
        if command == "/info":
            return render_info(self._workshop, self._schedule)
        if command == "/price":
            return render_price(self._schedule)
        return render_hint()

    def handle_update(self, update: Mapping[str, Any]) -> Optional[str]:
        """
        Process one webhook update and return the reply that was sent.

        Updates without a message (edits, callbacks, ...) are ignored.
        """
        message = update.get("message")
        if not message:
            return None

        sender = message.get("from") or {}
        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None or "id" not in sender:
            logger.warning("Ignoring update %s without sender or chat", update.get("update_id"))
            return None

        subscriber = Subscriber(
            user_id=int(sender["id"]),
            chat_id=int(chat_id),
            first_name=sender.get("first_name") or "",
            last_name=sender.get("last_name") or "",
            username=sender.get("username") or "",
        )
        try:
            self._subscribers.upsert(subscriber)
        except StoreUnavailableError as e:
            # Registration is best-effort; the user still gets a reply.
            logger.warning("Failed to register subscriber %s (%s)", subscriber.user_id, e)

        reply = self.reply_for(message.get("text") or "")
        try:
            self._messenger.send_message(chat_id, reply)
        except NotificationError as e:
            logger.warning("Failed to reply to chat_id=%s (%s)", chat_id, e)
            return None
        return reply
