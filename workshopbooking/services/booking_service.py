"""
Application service for creating, listing and cancelling bookings.

The service reads the booking list from a record store, delegates the
conflict check to the domain-level ``SlotEngine`` and writes the list back
with an optimistic version check. The store dependency is a simple protocol
so tests can substitute an in-memory fake.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date as _date
from typing import Any, Callable, List, Mapping, Optional, Protocol, Tuple, TypeVar, Union

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from ..domain.dates import as_date, slot_hour, today
from ..domain.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    ConcurrentModificationError,
    SlotConflictError,
    StaleWriteError,
    StoreUnavailableError,
)
from ..domain.models import Booking, SlotAvailability, StoreSnapshot
from ..domain.slot_engine import SlotEngine
from .outbox import BookingCreated, Outbox

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A mutation receives the current list and returns (new list or None, result).
Mutation = Callable[[List[Booking]], Tuple[Optional[List[Booking]], T]]


class BookingStoreProtocol(Protocol):
    """Protocol describing the record store behaviour needed by the service."""

    def get(self) -> StoreSnapshot:
        """Return every stored booking together with the current version token."""

    def set(self, bookings: List[Booking], expected_version: int) -> int:
        """
        Replace the stored list if the version is still ``expected_version``.

        Returns the new version; raises ``StaleWriteError`` otherwise.
        """


def _log_stale_write(retry_state: RetryCallState) -> None:
    logger.warning(
        "Booking list changed concurrently, retrying (attempt %s)",
        retry_state.attempt_number,
    )


class BookingService:
    """
    Orchestrates the record store, the slot engine and the outbox.

    Reads degrade to an empty result when the store is down; writes surface
    ``StoreUnavailableError`` so callers know nothing was saved.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        engine: SlotEngine,
        outbox: Optional[Outbox] = None,
        *,
        timezone: str = "Europe/Moscow",
        max_write_attempts: int = 5,
    ) -> None:
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be >= 1")
        self._store = store
        self._engine = engine
        self._outbox = outbox if outbox is not None else Outbox()
        self._timezone = timezone
        self._max_write_attempts = max_write_attempts

    @property
    def engine(self) -> SlotEngine:
        return self._engine

    @property
    def outbox(self) -> Outbox:
        return self._outbox

    def today(self) -> _date:
        return today(self._timezone)

    # Reads

    def list_bookings(self, as_of: Optional[_date] = None, prune: bool = True) -> List[Booking]:
        """
        Return bookings dated on or after ``as_of`` (default: today).

        With ``prune`` the stale bookings are also removed from the store.
        Store failures degrade to an empty list.
        """
        as_of = as_date(as_of) if as_of is not None else self.today()

        try:
            if prune:
                bookings = self.prune(as_of)
            else:
                bookings = [b for b in self._store.get().bookings if b.booking_date >= as_of]
        except (StoreUnavailableError, ConcurrentModificationError) as e:
            logger.warning("Booking store unavailable, returning empty list (%s)", e)
            return []

        return sorted(bookings, key=lambda b: (b.booking_date, slot_hour(b.start_time)))

    def available_slots(self, booking_date: _date) -> List[str]:
        return self._engine.available_slots(self._read_bookings(), as_date(booking_date))

    def availability(self, booking_date: _date) -> List[SlotAvailability]:
        return self._engine.availability(self._read_bookings(), as_date(booking_date))

    def max_bookable_hours(self, booking_date: _date, start_time: str) -> int:
        free = self.available_slots(booking_date)
        return self._engine.max_bookable_hours(start_time, free)

    # Writes

    def prune(self, as_of: _date) -> List[Booking]:
        """
        Drop bookings dated strictly before ``as_of`` and return the rest.

        The store is only written when something was dropped.
        """
        as_of = as_date(as_of)

        def mutate(bookings: List[Booking]) -> Tuple[Optional[List[Booking]], List[Booking]]:
            kept = [b for b in bookings if b.booking_date >= as_of]
            if len(kept) == len(bookings):
                return None, kept
            logger.info("Pruning %d booking(s) dated before %s", len(bookings) - len(kept), as_of)
            return kept, kept

        return self._write(mutate)

    def create_booking(self, payload: Union[Mapping[str, Any], Booking]) -> Booking:
        """
        Validate and persist a new booking, then queue its notification.

        Args:
            payload: Booking record (camelCase keys) or a ready Booking

        Returns:
            The stored booking, with ``total_price`` filled in

        Raises:
            BookingValidationError: Missing/malformed fields or duplicate id
            SlotConflictError: The interval overlaps a booking or runs past closing
            StoreUnavailableError: The store could not be read or written
            ConcurrentModificationError: Concurrent writers kept winning
        """
        booking = payload if isinstance(payload, Booking) else Booking.from_record(payload)
        if booking.total_price is None:
            booking = replace(booking, total_price=self._engine.total_price(booking.hours))

        # Window checks need no stored data.
        self._raise_on_conflict([], booking)

        def mutate(bookings: List[Booking]) -> Tuple[Optional[List[Booking]], Booking]:
            if any(existing.id == booking.id for existing in bookings):
                raise BookingValidationError(f"Booking id already exists: {booking.id}")
            self._raise_on_conflict(bookings, booking)
            return bookings + [booking], booking

        created = self._write(mutate)
        logger.info(
            "Booking %s created: %s %s x%dh",
            created.id,
            created.booking_date,
            created.start_time,
            created.hours,
        )

        self._outbox.publish(BookingCreated(booking=created))
        return created

    def remove_booking(self, booking_id: str) -> Booking:
        """
        Delete a booking by id and return it.

        Raises:
            BookingNotFoundError: If no booking has this id
            StoreUnavailableError: The store could not be read or written
        """
        if not booking_id:
            raise BookingValidationError("Missing booking id")

        def mutate(bookings: List[Booking]) -> Tuple[Optional[List[Booking]], Booking]:
            kept = [b for b in bookings if b.id != booking_id]
            if len(kept) == len(bookings):
                raise BookingNotFoundError(booking_id)
            removed = next(b for b in bookings if b.id == booking_id)
            return kept, removed

        removed = self._write(mutate)
        logger.info("Booking %s removed", booking_id)
        return removed

    # Internals

    def _read_bookings(self) -> List[Booking]:
        try:
            return self._store.get().bookings
        except StoreUnavailableError as e:
            logger.warning("Booking store unavailable, treating date as empty (%s)", e)
            return []

    def _raise_on_conflict(self, bookings: List[Booking], booking: Booking) -> None:
        conflict = self._engine.validate_request(bookings, booking)
        if conflict is not None:
            raise SlotConflictError(conflict.hour, conflict.reason)

    def _write(self, mutate: Mutation) -> T:
        """
        Run a read-modify-write cycle under the store's version check.

        On a stale version the list is re-read and the mutation re-applied, so
        business checks always run against the state actually being replaced.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._max_write_attempts),
            wait=wait_random(min=0, max=0.05),
            retry=retry_if_exception_type(StaleWriteError),
            before_sleep=_log_stale_write,
            reraise=True,
        )

        try:
            return retrying(self._apply, mutate)
        except StaleWriteError as e:
            raise ConcurrentModificationError(
                f"Booking list kept changing after {self._max_write_attempts} attempts"
            ) from e

    def _apply(self, mutate: Mutation) -> T:
        snapshot = self._store.get()
        new_bookings, result = mutate(list(snapshot.bookings))
        if new_bookings is not None:
            self._store.set(new_bookings, expected_version=snapshot.version)
        return result
