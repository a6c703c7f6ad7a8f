"""
Adapters layer - Record stores and Telegram integration.
"""

from .file_store import JsonFileBookingStore
from .memory_store import InMemoryBookingStore, InMemorySubscriberStore
from .telegram import TelegramClient, TelegramNotifier
from .upstash import UpstashBookingStore, UpstashClient, UpstashSubscriberStore

__all__ = [
    "JsonFileBookingStore",
    "InMemoryBookingStore",
    "InMemorySubscriberStore",
    "TelegramClient",
    "TelegramNotifier",
    "UpstashBookingStore",
    "UpstashClient",
    "UpstashSubscriberStore",
]
