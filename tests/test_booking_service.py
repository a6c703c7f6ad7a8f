"""
Tests for the BookingService orchestration layer.
"""

import json
import threading
from typing import List

import pendulum
import pytest

from workshopbooking.adapters.file_store import JsonFileBookingStore
from workshopbooking.adapters.memory_store import InMemoryBookingStore
from workshopbooking.domain.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    ConcurrentModificationError,
    SlotConflictError,
    StaleWriteError,
    StoreUnavailableError,
)
from workshopbooking.domain.models import Booking, Schedule, StoreSnapshot
from workshopbooking.domain.slot_engine import SlotEngine
from workshopbooking.services.booking_service import BookingService
from workshopbooking.services.outbox import Outbox

TODAY = pendulum.date(2026, 10, 19)
CLASS_DAY = pendulum.date(2026, 10, 24)


def _payload(booking_id, start_time="10:00", hours=1, booking_date="2026-10-24", **extra):
    payload = {
        "id": booking_id,
        "firstName": "Маша",
        "startTime": start_time,
        "hours": hours,
        "bookingDate": booking_date,
    }
    payload.update(extra)
    return payload


def _booking(booking_id, start_time="10:00", hours=1, booking_date=CLASS_DAY):
    return Booking.from_record(_payload(booking_id, start_time, hours, booking_date))


def _build_service(store, outbox=None, **kwargs) -> BookingService:
    engine = SlotEngine(Schedule())
    return BookingService(store, engine, outbox if outbox is not None else Outbox(), **kwargs)


class UnavailableStore:
    """Store stub that is always down."""

    def get(self) -> StoreSnapshot:
        raise StoreUnavailableError("Redis credentials not configured")

    def set(self, bookings: List[Booking], expected_version: int) -> int:
        raise StoreUnavailableError("Redis credentials not configured")


class InterleavingStore(InMemoryBookingStore):
    """Slips a competing booking in between the first read and the first write."""

    def __init__(self, competitor: Booking):
        super().__init__()
        self._competitor = competitor
        self._armed = True

    def set(self, bookings, expected_version):
        if self._armed:
            self._armed = False
            super().set(self.get().bookings + [self._competitor], expected_version)
        return super().set(bookings, expected_version)


class AlwaysStaleStore(InMemoryBookingStore):
    def set(self, bookings, expected_version):
        raise StaleWriteError("somebody else wrote first")


class ReadBarrierStore(InMemoryBookingStore):
    """Holds the first ``parties`` reads until all of them have read."""

    def __init__(self, parties: int):
        super().__init__()
        self._barrier = threading.Barrier(parties, timeout=5)
        self._pending_reads = parties
        self._count_lock = threading.Lock()

    def get(self):
        snapshot = super().get()
        with self._count_lock:
            wait = self._pending_reads > 0
            self._pending_reads -= 1
        if wait:
            self._barrier.wait()
        return snapshot


class TestCreateBooking:
    """Tests for create_booking."""

    def test_create_on_empty_store(self):
        """Scenario A: accepted, and its hours become occupied."""
        store = InMemoryBookingStore()
        service = _build_service(store)

        created = service.create_booking(_payload("a", "10:00", 2))

        assert created.id == "a"
        assert service.engine.occupied_hours(store.get().bookings, CLASS_DAY) == {"10:00", "11:00"}

    def test_conflict_is_rejected_and_nothing_persisted(self):
        """Scenario B: overlapping request names the colliding hour."""
        store = InMemoryBookingStore([_booking("a", "10:00", 2)])
        service = _build_service(store)

        with pytest.raises(SlotConflictError) as exc_info:
            service.create_booking(_payload("b", "11:00", 1))

        assert exc_info.value.hour == "11:00"
        assert exc_info.value.reason == "occupied"
        assert [b.id for b in store.get().bookings] == ["a"]
        assert store.version == 0

    def test_request_filling_to_closing_is_accepted(self):
        """Scenario C."""
        store = InMemoryBookingStore([_booking("a", "10:00", 1)])
        service = _build_service(store)

        service.create_booking(_payload("b", "11:00", 3))

        assert service.available_slots(CLASS_DAY) == []

    def test_last_slot_overrun_is_rejected_without_reading_store(self):
        service = _build_service(UnavailableStore())

        with pytest.raises(SlotConflictError) as exc_info:
            service.create_booking(_payload("a", "13:00", 2))

        assert exc_info.value.reason == "after_closing"
        assert exc_info.value.hour == "14:00"

    def test_total_price_is_computed_when_missing(self):
        service = _build_service(InMemoryBookingStore())

        created = service.create_booking(_payload("a", "10:00", 3))

        assert created.total_price == 2100

    def test_given_total_price_is_kept(self):
        service = _build_service(InMemoryBookingStore())

        created = service.create_booking(_payload("a", "10:00", 3, totalPrice=1500))

        assert created.total_price == 1500

    def test_missing_fields_are_rejected(self):
        store = InMemoryBookingStore()
        service = _build_service(store)
        payload = _payload("a")
        del payload["startTime"]

        with pytest.raises(BookingValidationError, match="startTime"):
            service.create_booking(payload)

        assert store.get().bookings == []

    def test_duplicate_id_is_rejected(self):
        store = InMemoryBookingStore([_booking("a", "10:00", 1)])
        service = _build_service(store)

        with pytest.raises(BookingValidationError, match="already exists"):
            service.create_booking(_payload("a", "12:00", 1))

    def test_bookings_stay_disjoint(self):
        """After every successful create, hour intervals on a date are disjoint."""
        store = InMemoryBookingStore()
        service = _build_service(store)
        requests = [("a", "10:00", 2), ("b", "11:00", 2), ("c", "12:00", 1), ("d", "13:00", 2), ("e", "13:00", 1)]

        for booking_id, start, hours in requests:
            try:
                service.create_booking(_payload(booking_id, start, hours))
            except SlotConflictError:
                pass

            seen = set()
            for booking in store.get().bookings:
                hours_taken = set(service.engine.expand(booking.start_time, booking.hours))
                assert not hours_taken & seen
                seen |= hours_taken

        assert sorted(b.id for b in store.get().bookings) == ["a", "c", "e"]

    def test_created_booking_is_published_to_outbox(self):
        outbox = Outbox()
        service = _build_service(InMemoryBookingStore(), outbox=outbox)

        service.create_booking(_payload("a"))

        events = outbox.drain()
        assert [event.booking.id for event in events] == ["a"]

    def test_rejected_booking_is_not_published(self):
        outbox = Outbox()
        service = _build_service(InMemoryBookingStore([_booking("a")]), outbox=outbox)

        with pytest.raises(SlotConflictError):
            service.create_booking(_payload("b"))

        assert len(outbox) == 0

    def test_store_outage_is_surfaced(self):
        service = _build_service(UnavailableStore())

        with pytest.raises(StoreUnavailableError):
            service.create_booking(_payload("a"))

    def test_unreadable_stored_booking_blocks_writes(self, tmp_path):
        """A record that cannot be parsed is neither ignored nor overwritten."""
        path = tmp_path / "bookings.json"
        legacy = {
            "id": "legacy",
            "name": "Петя",
            "gender": "other",
            "startTime": "12:00",
            "hours": 1,
            "bookingDate": "2026-10-24",
        }
        original = json.dumps({"version": 1, "bookings": [legacy]})
        path.write_text(original, encoding="utf-8")
        service = _build_service(JsonFileBookingStore(path))

        with pytest.raises(StoreUnavailableError):
            service.create_booking(_payload("new", "12:00", 1))
        with pytest.raises(StoreUnavailableError):
            service.remove_booking("legacy")

        assert service.list_bookings(as_of=TODAY) == []
        assert path.read_text(encoding="utf-8") == original


class TestConcurrentWrites:
    """The version check closes the read-modify-write race."""

    def test_stale_write_is_retried_against_fresh_state(self):
        store = InterleavingStore(competitor=_booking("other", "10:00", 1))
        service = _build_service(store)

        service.create_booking(_payload("mine", "12:00", 1))

        assert sorted(b.id for b in store.get().bookings) == ["mine", "other"]

    def test_retry_detects_conflict_with_concurrent_booking(self):
        store = InterleavingStore(competitor=_booking("other", "11:00", 1))
        service = _build_service(store)

        with pytest.raises(SlotConflictError) as exc_info:
            service.create_booking(_payload("mine", "10:00", 2))

        assert exc_info.value.hour == "11:00"
        assert [b.id for b in store.get().bookings] == ["other"]

    def test_retries_are_bounded(self):
        service = _build_service(AlwaysStaleStore(), max_write_attempts=2)

        with pytest.raises(ConcurrentModificationError):
            service.create_booking(_payload("a"))

    def test_two_concurrent_creates_for_same_hour(self):
        """Scenario E: both read before either writes, only one may win."""
        store = ReadBarrierStore(parties=2)
        service = _build_service(store)
        results = []
        results_lock = threading.Lock()

        def attempt(booking_id):
            try:
                outcome = service.create_booking(_payload(booking_id, "12:00", 1))
            except SlotConflictError as e:
                outcome = e
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(name,)) for name in ("first", "second")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        created = [r for r in results if isinstance(r, Booking)]
        conflicts = [r for r in results if isinstance(r, SlotConflictError)]

        assert len(created) == 1
        assert len(conflicts) == 1
        assert conflicts[0].hour == "12:00"
        assert len(store.get().bookings) == 1


class TestListAndPrune:
    """Tests for list_bookings and prune."""

    def test_list_prunes_past_bookings(self):
        """Scenario D: yesterday's booking is dropped from the store."""
        yesterday = _booking("old", booking_date=TODAY.subtract(days=1))
        tomorrow = _booking("new", booking_date=TODAY.add(days=1))
        store = InMemoryBookingStore([yesterday, tomorrow])
        service = _build_service(store)

        listed = service.list_bookings(as_of=TODAY)

        assert [b.id for b in listed] == ["new"]
        assert [b.id for b in store.get().bookings] == ["new"]

    def test_bookings_for_today_are_kept(self):
        store = InMemoryBookingStore([_booking("today", booking_date=TODAY)])
        service = _build_service(store)

        assert [b.id for b in service.list_bookings(as_of=TODAY)] == ["today"]

    def test_list_is_idempotent(self):
        store = InMemoryBookingStore([
            _booking("old", booking_date=TODAY.subtract(days=7)),
            _booking("a", "12:00", booking_date=CLASS_DAY),
            _booking("b", "10:00", booking_date=CLASS_DAY),
        ])
        service = _build_service(store)

        first = service.list_bookings(as_of=TODAY)
        version_after_first = store.version
        second = service.list_bookings(as_of=TODAY)

        assert first == second
        assert store.version == version_after_first
        assert [b.id for b in first] == ["b", "a"]

    def test_list_without_pruning_leaves_store_untouched(self):
        store = InMemoryBookingStore([
            _booking("old", booking_date=TODAY.subtract(days=1)),
            _booking("new", booking_date=CLASS_DAY),
        ])
        service = _build_service(store)

        listed = service.list_bookings(as_of=TODAY, prune=False)

        assert [b.id for b in listed] == ["new"]
        assert len(store.get().bookings) == 2
        assert store.version == 0

    def test_prune_without_stale_bookings_does_not_write(self):
        store = InMemoryBookingStore([_booking("new", booking_date=CLASS_DAY)])
        service = _build_service(store)

        kept = service.prune(TODAY)

        assert [b.id for b in kept] == ["new"]
        assert store.version == 0

    def test_list_degrades_to_empty_when_store_is_down(self):
        service = _build_service(UnavailableStore())

        assert service.list_bookings(as_of=TODAY) == []
        assert service.available_slots(CLASS_DAY) == ["10:00", "11:00", "12:00", "13:00"]

    def test_create_then_list_then_remove(self):
        """Round trip: created booking is listed, removed booking is not."""
        service = _build_service(InMemoryBookingStore())

        service.create_booking(_payload("a", "10:00", 2))
        assert [b.id for b in service.list_bookings(as_of=TODAY)] == ["a"]

        service.remove_booking("a")
        assert service.list_bookings(as_of=TODAY) == []

    def test_max_bookable_hours_for_date(self):
        service = _build_service(InMemoryBookingStore([_booking("a", "12:00", 1)]))

        assert service.max_bookable_hours(CLASS_DAY, "10:00") == 2
        assert service.max_bookable_hours(CLASS_DAY, "12:00") == 0


class TestRemoveBooking:
    """Tests for remove_booking."""

    def test_remove_existing(self):
        store = InMemoryBookingStore([_booking("a"), _booking("b", "12:00")])
        service = _build_service(store)

        removed = service.remove_booking("a")

        assert removed.id == "a"
        assert [b.id for b in store.get().bookings] == ["b"]

    def test_remove_missing_signals_not_found(self):
        store = InMemoryBookingStore([_booking("a")])
        service = _build_service(store)

        with pytest.raises(BookingNotFoundError) as exc_info:
            service.remove_booking("zzz")

        assert exc_info.value.booking_id == "zzz"
        assert store.version == 0

    def test_remove_surfaces_store_outage(self):
        service = _build_service(UnavailableStore())

        with pytest.raises(StoreUnavailableError):
            service.remove_booking("a")
