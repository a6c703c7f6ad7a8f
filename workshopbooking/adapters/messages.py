"""
Telegram message templates (HTML parse mode).
"""

from html import escape
from typing import Protocol

from ..domain.dates import format_date, slot_label
from ..domain.models import Booking, Schedule


class WorkshopInfo(Protocol):
    name: str
    address: str
    phone: str


def _window(schedule: Schedule) -> str:
    return f"{slot_label(schedule.opening_hour)} до {slot_label(schedule.closing_hour)}"


def _hours_word(hours: int) -> str:
    if hours % 10 == 1 and hours % 100 != 11:
        return "час"
    if hours % 10 in (2, 3, 4) and hours % 100 not in (12, 13, 14):
        return "часа"
    return "часов"


def render_booking_notice(booking: Booking) -> str:
    """Operator notice about a new booking."""
    lines = [
        "🆕 <b>Новая запись на мастер-класс!</b>",
        "",
        f"👤 <b>Имя:</b> {escape(booking.display_name)}",
    ]
    if booking.age is not None:
        lines.append(f"🎂 <b>Возраст:</b> {booking.age}")
    if booking.gender:
        lines.append(f"⚧ <b>Пол:</b> {'мальчик' if booking.gender == 'male' else 'девочка'}")
    if booking.parent_phone:
        lines.append(f"📞 <b>Телефон родителей:</b> {escape(booking.parent_phone)}")
    lines.extend([
        f"📅 <b>Дата:</b> {format_date(booking.booking_date)}",
        f"⏰ <b>Время:</b> {booking.start_time} - {booking.end_time} ({booking.hours} ч.)",
    ])
    if booking.total_price is not None:
        lines.append(f"💰 <b>Стоимость:</b> {booking.total_price} ₽")
    return "\n".join(lines)


def render_start(workshop: WorkshopInfo, schedule: Schedule) -> str:
    return "\n".join([
        f"🤲 <b>Добро пожаловать в {escape(workshop.name)}!</b>",
        "",
        "Здесь вы можете:",
        "• Записаться на мастер-класс",
        "• Получать новости и акции",
        "",
        f"📍 <b>Адрес:</b> {escape(workshop.address)}",
        f"📞 <b>Телефон:</b> {escape(workshop.phone)}",
        f"⏰ <b>Мастер-классы:</b> Каждую субботу с {_window(schedule)}",
        "",
        "Нажмите кнопку меню ниже, чтобы записаться! 👇",
    ])


def render_help(workshop: WorkshopInfo) -> str:
    return "\n".join([
        f"🤲 <b>{escape(workshop.name)}</b>",
        "",
        "<b>Доступные команды:</b>",
        "/start — Начать",
        "/help — Помощь",
        "/info — О мастерской",
        "/price — Цены",
        "",
        "Чтобы записаться на мастер-класс, нажмите кнопку меню!",
    ])


def render_info(workshop: WorkshopInfo, schedule: Schedule) -> str:
    return "\n".join([
        "🤲 <b>О нашей мастерской</b>",
        "",
        f"{escape(workshop.name)} — уютное место, где дети и взрослые учатся "
        "создавать уникальные изделия из глины.",
        "",
        f"📍 <b>Адрес:</b> {escape(workshop.address)}",
        "",
        f"📞 <b>Телефон:</b> {escape(workshop.phone)}",
        "",
        "⏰ <b>Режим работы:</b>",
        f"Мастер-классы проводятся каждую субботу с {_window(schedule)}",
    ])


def render_price(schedule: Schedule) -> str:
    lines = ["💰 <b>Стоимость мастер-классов</b>", ""]
    for hours in schedule.hours_options:
        price = hours * schedule.price_per_hour
        lines.append(f"• {hours} {_hours_word(hours)} — {price:,} ₽".replace(",", " "))
    lines.extend([
        "",
        "✅ Все материалы включены в стоимость!",
        "",
        "Записывайтесь через кнопку меню 👇",
    ])
    return "\n".join(lines)


def render_hint() -> str:
    return "\n".join([
        "Чтобы записаться на мастер-класс, нажмите кнопку меню внизу экрана 👇",
        "",
        "Или используйте команды:",
        "/info — О мастерской",
        "/price — Цены",
    ])
