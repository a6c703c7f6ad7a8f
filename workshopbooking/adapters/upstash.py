"""
Upstash Redis REST client and the stores built on it.
"""

import json
import logging
from typing import Any, Dict, List

import requests

from ..domain.exceptions import StaleWriteError, StoreUnavailableError
from ..domain.models import Booking, StoreSnapshot, Subscriber
from .records import bookings_from_records, bookings_to_records

logger = logging.getLogger(__name__)

BOOKINGS_KEY = "clay_workshop_bookings"
SUBSCRIBERS_KEY = "telegram_users"

# KEYS[1] = list key, KEYS[2] = version key, ARGV[1] = expected version, ARGV[2] = payload
COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[2]) or '0'
if current ~= ARGV[1] then
  return -1
end
redis.call('SET', KEYS[1], ARGV[2])
return redis.call('INCR', KEYS[2])
"""


class UpstashClient:
    """
    Minimal client for the Upstash Redis REST API.

    Each command is POSTed as a JSON array, e.g. ``["GET", "key"]``; the
    response carries either ``result`` or ``error``.
    """

    def __init__(self, url: str, token: str, timeout_seconds: float = 10.0):
        """
        Initialize the REST client.

        Args:
            url: Database REST URL (UPSTASH_REDIS_REST_URL)
            token: REST token (UPSTASH_REDIS_REST_TOKEN)
            timeout_seconds: Per-request timeout
        """
        if not url or not token:
            raise StoreUnavailableError("Redis credentials not configured")

        self.url = url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json"
        }

    def execute(self, *command: Any) -> Any:
        """
        Run a single Redis command and return its result.

        Raises:
            StoreUnavailableError: On network, HTTP or Redis errors
        """
        try:
            response = requests.post(
                self.url,
                headers=self.headers,
                json=[str(part) for part in command],
                timeout=self.timeout_seconds
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.RequestException as e:
            raise StoreUnavailableError(f"Upstash request {command[0]} failed: {e}") from e
        except ValueError as e:
            raise StoreUnavailableError(f"Upstash returned invalid JSON for {command[0]}: {e}") from e

        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Unexpected Upstash response: {data!r}")
        if "error" in data:
            raise StoreUnavailableError(f"Upstash error for {command[0]}: {data['error']}")

        return data.get("result")


class UpstashBookingStore:
    """
    Booking list stored as one JSON value, with a version counter next to it.

    Writes go through a Lua script so the version check and the replace
    happen atomically on the server.
    """

    def __init__(self, client: UpstashClient, key: str = BOOKINGS_KEY):
        self.client = client
        self.key = key
        self.version_key = f"{key}:version"

    def get(self) -> StoreSnapshot:
        result = self.client.execute("MGET", self.key, self.version_key)

        if not isinstance(result, list) or len(result) != 2:
            raise StoreUnavailableError(f"Unexpected MGET result: {result!r}")

        raw_value, raw_version = result
        records = self._decode_list(raw_value)

        try:
            version = int(raw_version) if raw_version is not None else 0
        except (TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Invalid version value: {raw_version!r}") from e

        return StoreSnapshot(bookings=bookings_from_records(records), version=version)

    def set(self, bookings: List[Booking], expected_version: int) -> int:
        payload = json.dumps(bookings_to_records(bookings), ensure_ascii=False)

        result = self.client.execute(
            "EVAL",
            COMPARE_AND_SET_SCRIPT,
            2,
            self.key,
            self.version_key,
            expected_version,
            payload,
        )

        try:
            new_version = int(result)
        except (TypeError, ValueError) as e:
            raise StoreUnavailableError(f"Unexpected EVAL result: {result!r}") from e

        if new_version < 0:
            raise StaleWriteError(f"Version of {self.key} moved past {expected_version}")
        return new_version

    def _decode_list(self, raw_value: Any) -> List[Any]:
        if raw_value is None:
            return []

        try:
            value = json.loads(raw_value) if isinstance(raw_value, str) else raw_value
        except json.JSONDecodeError as e:
            raise StoreUnavailableError(f"Stored value of {self.key} is not JSON: {e}") from e

        if not isinstance(value, list):
            raise StoreUnavailableError(f"Stored value of {self.key} is not a list")
        return value


class UpstashSubscriberStore:
    """Subscribers kept in a Redis hash: user id -> JSON record."""

    def __init__(self, client: UpstashClient, key: str = SUBSCRIBERS_KEY):
        self.client = client
        self.key = key

    def upsert(self, subscriber: Subscriber) -> None:
        self.client.execute(
            "HSET",
            self.key,
            subscriber.user_id,
            json.dumps(subscriber.to_record(), ensure_ascii=False),
        )

    def all(self) -> List[Subscriber]:
        result = self.client.execute("HGETALL", self.key) or []

        # The REST API returns a flat [field, value, field, value, ...] list.
        if isinstance(result, list):
            entries: Dict[str, Any] = dict(zip(result[::2], result[1::2]))
        elif isinstance(result, dict):
            entries = result
        else:
            raise StoreUnavailableError(f"Unexpected HGETALL result: {result!r}")

        subscribers: List[Subscriber] = []
        for user_id, raw in entries.items():
            try:
                record = json.loads(raw) if isinstance(raw, str) else raw
                subscribers.append(Subscriber.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid subscriber %s (%s)", user_id, e)

        return subscribers
