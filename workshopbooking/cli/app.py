"""
Main CLI application using Typer.
"""

import logging
import time
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..config import AppConfig, get_default_config_path
from ..domain.dates import format_date, is_booking_open, next_class_date, parse_date
from ..domain.exceptions import (
    BookingError,
    BookingNotFoundError,
    BookingValidationError,
    NotificationError,
    SlotConflictError,
)
from ..domain.models import generate_id
from ..domain.slot_engine import SlotEngine
from ..adapters.file_store import JsonFileBookingStore
from ..adapters.memory_store import InMemoryBookingStore, InMemorySubscriberStore
from ..adapters.telegram import TelegramClient, TelegramNotifier
from ..adapters.upstash import UpstashBookingStore, UpstashClient, UpstashSubscriberStore
from ..services.booking_service import BookingService
from ..services.bot_commands import BotCommandHandler
from ..services.broadcast import BroadcastService
from ..services.outbox import NotificationDispatcher, Outbox

app = typer.Typer(
    name="workshopbooking",
    help="Book and manage Saturday clay workshop slots",
    add_completion=False
)

console = Console()
logger = logging.getLogger(__name__)

POLL_RETRY_SECONDS = 5

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")
]
DateOption = Annotated[Optional[str], typer.Option("--date", help="Date (YYYY-MM-DD)")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Workshop booking administration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        return AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


def _upstash_client(config: AppConfig) -> UpstashClient:
    return UpstashClient(
        url=config.store.url,
        token=config.store.token,
        timeout_seconds=config.store.timeout_seconds
    )


def _build_service(config: AppConfig) -> BookingService:
    if config.store.backend == "upstash":
        store = UpstashBookingStore(_upstash_client(config), key=config.store.key)
    elif config.store.backend == "file":
        store = JsonFileBookingStore(config.store.path)
    else:
        store = InMemoryBookingStore()

    engine = SlotEngine(config.schedule.to_schedule())
    return BookingService(store, engine, Outbox(), timezone=config.timezone)


def _build_subscriber_store(config: AppConfig):
    if config.store.backend == "upstash":
        return UpstashSubscriberStore(_upstash_client(config), key=config.store.subscribers_key)
    return InMemorySubscriberStore()


def _telegram_client(config: AppConfig) -> TelegramClient:
    return TelegramClient(
        bot_token=config.telegram.bot_token,
        timeout_seconds=config.telegram.timeout_seconds
    )


def _resolve_date(config: AppConfig, service: BookingService, value: Optional[str], default_next_class: bool):
    if value:
        return parse_date(value)
    if default_next_class:
        return next_class_date(service.today(), config.schedule.class_weekday)
    return service.today()


def _fail(message: str) -> None:
    console.print(f"[bold red]Ошибка:[/bold red] {message}")
    raise typer.Exit(1)


@app.command()
def slots(
    config_file: ConfigOption = None,
    date: DateOption = None,
):
    """
    Show which slots are free for the next class (or --date).
    """
    config = _load_config(config_file)
    service = _build_service(config)

    try:
        booking_date = _resolve_date(config, service, date, default_next_class=True)
    except BookingValidationError as e:
        _fail(str(e))

    table = Table(
        title=f"Слоты на {format_date(booking_date)}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Начало", style="bold yellow")
    table.add_column("Статус")
    table.add_column("Макс. часов", justify="right")

    for slot in service.availability(booking_date):
        status = "[green]свободно[/green]" if slot.available else "[red]занято[/red]"
        table.add_row(slot.start_time, status, str(slot.max_hours))

    console.print()
    console.print(table)
    if not is_booking_open(service.today(), config.schedule.booking_weekday):
        console.print("[yellow]Запись на ближайшее занятие открывается в пятницу.[/yellow]")
    console.print()


@app.command("list")
def list_bookings(
    config_file: ConfigOption = None,
    date: Annotated[Optional[str], typer.Option("--date", help="Show bookings on or after this date (YYYY-MM-DD)")] = None,
    no_prune: Annotated[bool, typer.Option("--no-prune", help="Do not delete past bookings from the store.")] = False,
):
    """
    List upcoming bookings; past bookings are pruned from the store.
    """
    config = _load_config(config_file)
    service = _build_service(config)

    try:
        as_of = _resolve_date(config, service, date, default_next_class=False)
    except BookingValidationError as e:
        _fail(str(e))

    bookings = service.list_bookings(as_of=as_of, prune=not no_prune)

    if not bookings:
        console.print("[yellow]Записей нет.[/yellow]")
        return

    table = Table(title="Записи", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Дата")
    table.add_column("Время", style="bold yellow")
    table.add_column("Имя")
    table.add_column("Возраст", justify="right")
    table.add_column("Телефон")
    table.add_column("Сумма", justify="right")

    for booking in bookings:
        table.add_row(
            booking.id,
            booking.booking_date.to_date_string(),
            f"{booking.start_time} - {booking.end_time}",
            booking.display_name,
            "" if booking.age is None else str(booking.age),
            booking.parent_phone,
            "" if booking.total_price is None else f"{booking.total_price} ₽",
        )

    console.print()
    console.print(table)
    console.print(f"Всего: {len(bookings)}, часов: {sum(b.hours for b in bookings)}\n")


@app.command()
def book(
    first_name: Annotated[str, typer.Argument(help="Participant first name")],
    start: Annotated[str, typer.Option("--start", "-s", help="Start slot, e.g. 10:00")],
    hours: Annotated[int, typer.Option("--hours", help="Number of hours")] = 1,
    last_name: Annotated[str, typer.Option("--last-name")] = "",
    age: Annotated[Optional[int], typer.Option("--age")] = None,
    gender: Annotated[Optional[str], typer.Option("--gender", help="male or female")] = None,
    phone: Annotated[str, typer.Option("--phone", help="Parent phone")] = "",
    date: DateOption = None,
    config_file: ConfigOption = None,
):
    """
    Book a slot for the next class (or --date), then notify operators.

    Examples:

        workshopbooking book Маша --start 10:00 --hours 2 --age 7
    """
    config = _load_config(config_file)
    service = _build_service(config)

    try:
        booking_date = _resolve_date(config, service, date, default_next_class=True)
        booking = service.create_booking({
            "id": generate_id(),
            "firstName": first_name,
            "lastName": last_name,
            "age": age,
            "gender": gender,
            "parentPhone": phone,
            "startTime": start,
            "hours": hours,
            "bookingDate": booking_date,
        })
    except SlotConflictError as e:
        _fail(f"{e} (конфликт: {e.hour})")
    except BookingError as e:
        _fail(str(e))

    console.print(Panel.fit(
        f"[bold green]✓ Вы записаны![/bold green]\n\n"
        f"[bold]Имя:[/bold] {booking.display_name}\n"
        f"[bold]Дата:[/bold] {format_date(booking.booking_date)}\n"
        f"[bold]Время:[/bold] {booking.start_time} - {booking.end_time}\n"
        f"[bold]Длительность:[/bold] {booking.hours} ч.\n"
        f"[bold]Стоимость:[/bold] {booking.total_price} ₽\n"
        f"[dim]ID: {booking.id}[/dim]",
        title="Запись"
    ))

    recipients = config.telegram.admin_chat_ids
    if config.telegram.bot_token and recipients:
        dispatcher = NotificationDispatcher(
            service.outbox,
            TelegramNotifier(_telegram_client(config)),
            recipients
        )
        report = dispatcher.dispatch_pending()
        if report.failed:
            console.print(f"[yellow]⚠ Уведомления: отправлено {report.sent}, ошибок {report.failed}[/yellow]")
    else:
        console.print("[dim]Уведомления не настроены (TELEGRAM_BOT_TOKEN / TELEGRAM_ADMIN_IDS).[/dim]")


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    config_file: ConfigOption = None,
):
    """
    Cancel a booking by id.
    """
    config = _load_config(config_file)
    service = _build_service(config)

    try:
        removed = service.remove_booking(booking_id)
    except BookingNotFoundError:
        _fail(f"Запись {booking_id} не найдена")
    except BookingError as e:
        _fail(str(e))

    console.print(
        f"[green]✓ Запись удалена:[/green] {removed.display_name}, "
        f"{removed.booking_date.to_date_string()} {removed.start_time}"
    )


@app.command()
def prune(
    config_file: ConfigOption = None,
    date: Annotated[Optional[str], typer.Option("--date", help="Drop bookings before this date (YYYY-MM-DD)")] = None,
):
    """
    Delete bookings dated before today (or --date).
    """
    config = _load_config(config_file)
    service = _build_service(config)

    try:
        as_of = _resolve_date(config, service, date, default_next_class=False)
        kept = service.prune(as_of)
    except BookingError as e:
        _fail(str(e))

    console.print(f"[green]✓ Осталось записей: {len(kept)}[/green]")


@app.command()
def subscribers(config_file: ConfigOption = None):
    """
    List bot subscribers.
    """
    config = _load_config(config_file)

    try:
        users = _build_subscriber_store(config).all()
    except BookingError as e:
        _fail(str(e))

    if not users:
        console.print("[yellow]Подписчиков пока нет.[/yellow]")
        return

    table = Table(title="Подписчики", show_header=True, header_style="bold cyan")
    table.add_column("Chat ID", style="dim")
    table.add_column("Имя", style="bold yellow")
    table.add_column("Username")
    table.add_column("С нами с")

    for user in users:
        table.add_row(
            str(user.chat_id),
            f"{user.first_name} {user.last_name}".strip(),
            f"@{user.username}" if user.username else "",
            user.subscribed_at.to_date_string(),
        )

    console.print()
    console.print(table)
    console.print(f"Всего: {len(users)}\n")


@app.command()
def broadcast(
    message: Annotated[str, typer.Argument(help="Message text (HTML allowed)")],
    photo: Annotated[Optional[str], typer.Option("--photo", help="Photo URL to send with the message")] = None,
    config_file: ConfigOption = None,
):
    """
    Send a message to every bot subscriber.
    """
    config = _load_config(config_file)

    service = BroadcastService(
        _build_subscriber_store(config),
        _telegram_client(config),
        delay_seconds=config.telegram.broadcast_delay_seconds
    )

    try:
        report = service.broadcast(message, photo=photo)
    except BookingError as e:
        _fail(str(e))

    console.print(
        f"[green]✓ Отправлено: {report.sent}[/green], ошибок: {report.failed}, всего: {report.total}"
    )


@app.command()
def bot(
    config_file: ConfigOption = None,
    once: Annotated[bool, typer.Option("--once", help="Process pending updates and exit.")] = False,
    poll_seconds: Annotated[int, typer.Option("--poll-seconds", help="Long-polling timeout.")] = 30,
):
    """
    Answer bot commands and register subscribers (long polling).
    """
    config = _load_config(config_file)
    client = _telegram_client(config)
    handler = BotCommandHandler(
        _build_subscriber_store(config),
        client,
        config.workshop,
        config.schedule.to_schedule()
    )

    offset: Optional[int] = None
    console.print("[bold cyan]Бот запущен.[/bold cyan] Ctrl+C для выхода.")

    try:
        while True:
            try:
                updates = client.get_updates(offset=offset, poll_seconds=0 if once else poll_seconds)
            except NotificationError as e:
                if once:
                    _fail(str(e))
                logger.warning("Polling failed, retrying in %ss (%s)", POLL_RETRY_SECONDS, e)
                time.sleep(POLL_RETRY_SECONDS)
                continue

            for update in updates:
                offset = int(update["update_id"]) + 1
                handler.handle_update(update)

            if once:
                # Confirm what was handled so it is not delivered again.
                if offset is not None:
                    try:
                        client.get_updates(offset=offset, poll_seconds=0)
                    except NotificationError as e:
                        console.print(f"[yellow]⚠ Не удалось подтвердить обновления: {e}[/yellow]")
                console.print(f"Обработано обновлений: {len(updates)}")
                return
    except KeyboardInterrupt:
        console.print("\nОстановлено.")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]workshopbooking[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
