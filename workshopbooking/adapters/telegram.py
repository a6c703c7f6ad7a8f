"""
Telegram Bot API client and the booking notifier built on it.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import requests

from ..domain.exceptions import NotificationError
from ..domain.models import Booking
from .messages import render_booking_notice

logger = logging.getLogger(__name__)

ChatId = Union[int, str]


class TelegramClient:
    """
    Client for the Telegram Bot API.

    Uses ``sendMessage`` for text and ``sendPhoto`` (with caption) when a
    photo URL is given. Messages are sent with HTML parse mode.
    """

    API_ENDPOINT = "https://api.telegram.org"

    def __init__(self, bot_token: str, timeout_seconds: float = 10.0):
        """
        Initialize the Bot API client.

        Args:
            bot_token: Token issued by @BotFather
            timeout_seconds: Per-request timeout
        """
        self.bot_token = bot_token
        self.timeout_seconds = timeout_seconds

    def send_message(self, chat_id: ChatId, text: str, photo: Optional[str] = None) -> None:
        """
        Send a message (or a captioned photo) to one chat.

        Raises:
            NotificationError: If the request fails or Telegram rejects it
        """
        if not self.bot_token:
            raise NotificationError("TELEGRAM_BOT_TOKEN is not configured")

        payload: Dict[str, Any] = {"chat_id": chat_id, "parse_mode": "HTML"}
        if photo:
            method = "sendPhoto"
            payload.update(photo=photo, caption=text)
        else:
            method = "sendMessage"
            payload.update(text=text, disable_web_page_preview=True)

        url = f"{self.API_ENDPOINT}/bot{self.bot_token}/{method}"

        try:
            response = requests.post(url, json=payload, timeout=self.timeout_seconds)
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Telegram {method} to {chat_id} failed: {e}") from e
        except ValueError as e:
            raise NotificationError(f"Telegram returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise NotificationError(f"Unexpected Telegram response: {data!r}")
        if not data.get("ok", False):
            raise NotificationError(f"Telegram API error: {data.get('description', data)}")

    def get_updates(self, offset: Optional[int] = None, poll_seconds: int = 0) -> List[Dict[str, Any]]:
        """
        Fetch pending updates with ``getUpdates`` (long polling).

        Args:
            offset: First update id to return; earlier ones are confirmed
            poll_seconds: How long Telegram may hold the request open

        Raises:
            NotificationError: If the request fails or Telegram rejects it
        """
        if not self.bot_token:
            raise NotificationError("TELEGRAM_BOT_TOKEN is not configured")

        params: Dict[str, Any] = {"timeout": poll_seconds, "allowed_updates": '["message"]'}
        if offset is not None:
            params["offset"] = offset

        url = f"{self.API_ENDPOINT}/bot{self.bot_token}/getUpdates"

        try:
            response = requests.get(url, params=params, timeout=self.timeout_seconds + poll_seconds)
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Telegram getUpdates failed: {e}") from e
        except ValueError as e:
            raise NotificationError(f"Telegram returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise NotificationError(f"Unexpected Telegram response: {data!r}")
        if not data.get("ok", False):
            raise NotificationError(f"Telegram API error: {data.get('description', data)}")
        return list(data.get("result", []))


class TelegramNotifier:
    """Sends new-booking notices to operator chats."""

    def __init__(self, client: TelegramClient):
        self.client = client

    def notify(self, booking: Booking, recipient: str) -> bool:
        try:
            self.client.send_message(recipient, render_booking_notice(booking))
        except NotificationError as e:
            logger.warning("Failed to send booking notice to chat_id=%s (%s)", recipient, e)
            return False
        return True
