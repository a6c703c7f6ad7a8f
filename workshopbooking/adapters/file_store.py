"""
Booking store backed by a local JSON file.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, List, Tuple

from ..domain.exceptions import StaleWriteError, StoreUnavailableError
from ..domain.models import Booking, StoreSnapshot
from .records import bookings_from_records, bookings_to_records


class JsonFileBookingStore:
    """
    Persists the booking list as ``{"version": n, "bookings": [...]}``.

    A bare JSON list (the browser-side cache format) is read as version 0.
    The version check is enforced within one process; writes are atomic
    renames so readers never see a half-written file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self) -> StoreSnapshot:
        with self._lock:
            records, version = self._load()
        return StoreSnapshot(bookings=bookings_from_records(records), version=version)

    def set(self, bookings: List[Booking], expected_version: int) -> int:
        with self._lock:
            _, version = self._load()
            if version != expected_version:
                raise StaleWriteError(
                    f"Expected version {expected_version}, {self.path} is at {version}"
                )
            new_version = version + 1
            self._save({"version": new_version, "bookings": bookings_to_records(bookings)})
            return new_version

    def _load(self) -> Tuple[List[Any], int]:
        if not self.path.exists():
            return [], 0

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"Cannot read booking file {self.path}: {e}") from e

        if isinstance(raw, list):
            return raw, 0
        if isinstance(raw, dict) and isinstance(raw.get("bookings", []), list):
            return raw.get("bookings", []), int(raw.get("version", 0))

        raise StoreUnavailableError(f"Unexpected content in booking file {self.path}")

    def _save(self, data: dict) -> None:
        folder = self.path.parent
        try:
            folder.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp"
            ) as tf:
                json.dump(data, tf, ensure_ascii=False, indent=2)
                tmp_name = tf.name
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write booking file {self.path}: {e}") from e
