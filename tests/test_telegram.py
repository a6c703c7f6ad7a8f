"""
Tests for the Telegram client, notifier and message templates.
"""

from unittest.mock import MagicMock, patch

import pendulum
import pytest
import requests

from workshopbooking.adapters.messages import render_booking_notice, render_price
from workshopbooking.adapters.telegram import TelegramClient, TelegramNotifier
from workshopbooking.domain.exceptions import NotificationError
from workshopbooking.domain.models import Booking, Schedule


def _response(payload):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


def _booking(**overrides):
    values = dict(
        id="b1",
        first_name="Маша",
        last_name="<Иванова>",
        start_time="11:00",
        hours=2,
        booking_date=pendulum.date(2026, 10, 24),
        age=7,
        gender="female",
        parent_phone="+7 900 000-00-00",
        total_price=1400,
    )
    values.update(overrides)
    return Booking(**values)


class TestTelegramClient:
    def test_send_message(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.return_value = _response({"ok": True, "result": {}})

            TelegramClient("TOKEN").send_message(123, "hello")

        args, kwargs = mock_post.call_args
        assert args[0] == "https://api.telegram.org/botTOKEN/sendMessage"
        assert kwargs["json"]["chat_id"] == 123
        assert kwargs["json"]["text"] == "hello"
        assert kwargs["json"]["parse_mode"] == "HTML"

    def test_send_photo_uses_caption(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.return_value = _response({"ok": True})

            TelegramClient("TOKEN").send_message("-100", "news", photo="https://img.example/p.jpg")

        args, kwargs = mock_post.call_args
        assert args[0].endswith("/sendPhoto")
        assert kwargs["json"]["caption"] == "news"
        assert kwargs["json"]["photo"] == "https://img.example/p.jpg"
        assert "text" not in kwargs["json"]

    def test_api_rejection_raises(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.return_value = _response({"ok": False, "description": "chat not found"})

            with pytest.raises(NotificationError, match="chat not found"):
                TelegramClient("TOKEN").send_message(1, "hi")

    @pytest.mark.parametrize("body", [["ok"], "ok", None])
    def test_non_object_body_raises(self, body):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.return_value = _response(body)

            with pytest.raises(NotificationError, match="Unexpected"):
                TelegramClient("TOKEN").send_message(1, "hi")

    def test_non_object_updates_body_raises(self):
        with patch("workshopbooking.adapters.telegram.requests.get") as mock_get:
            mock_get.return_value = _response([])

            with pytest.raises(NotificationError, match="Unexpected"):
                TelegramClient("TOKEN").get_updates()

    def test_network_error_raises(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.side_effect = requests.exceptions.Timeout("slow")

            with pytest.raises(NotificationError):
                TelegramClient("TOKEN").send_message(1, "hi")

    def test_missing_token_raises_without_request(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            with pytest.raises(NotificationError, match="TELEGRAM_BOT_TOKEN"):
                TelegramClient("").send_message(1, "hi")

        mock_post.assert_not_called()

    def test_get_updates(self):
        updates = [{"update_id": 10, "message": {"text": "/start"}}]

        with patch("workshopbooking.adapters.telegram.requests.get") as mock_get:
            mock_get.return_value = _response({"ok": True, "result": updates})

            result = TelegramClient("TOKEN").get_updates(offset=10, poll_seconds=5)

        assert result == updates
        args, kwargs = mock_get.call_args
        assert args[0].endswith("/getUpdates")
        assert kwargs["params"]["offset"] == 10
        assert kwargs["params"]["timeout"] == 5


class TestTelegramNotifier:
    def test_notify_sends_booking_notice(self):
        client = MagicMock()

        assert TelegramNotifier(client).notify(_booking(), "555") is True

        chat_id, text = client.send_message.call_args.args
        assert chat_id == "555"
        assert "11:00 - 13:00" in text

    def test_notify_reports_malformed_response_as_failure(self):
        with patch("workshopbooking.adapters.telegram.requests.post") as mock_post:
            mock_post.return_value = _response("<html>Bad Gateway</html>")

            assert TelegramNotifier(TelegramClient("TOKEN")).notify(_booking(), "555") is False

    def test_notify_reports_failure(self):
        client = MagicMock()
        client.send_message.side_effect = NotificationError("blocked")

        assert TelegramNotifier(client).notify(_booking(), "555") is False


class TestMessages:
    def test_booking_notice_escapes_user_text(self):
        text = render_booking_notice(_booking())

        assert "Маша &lt;Иванова&gt;" in text
        assert "🎂 <b>Возраст:</b> 7" in text
        assert "девочка" in text
        assert "1400 ₽" in text

    def test_booking_notice_skips_optional_fields(self):
        text = render_booking_notice(
            _booking(last_name="", age=None, gender=None, parent_phone="", total_price=None)
        )

        assert "Возраст" not in text
        assert "Телефон" not in text
        assert "Стоимость" not in text

    def test_price_list(self):
        text = render_price(Schedule())

        assert "• 1 час — 700 ₽" in text
        assert "• 2 часа — 1 400 ₽" in text
        assert "• 4 часа — 2 800 ₽" in text
