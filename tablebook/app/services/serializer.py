"""Per-(sector, slot) serialization of table allocation.

Every allocation attempt for the same lock key runs strictly one at a
time, in arrival order, and sees the committed result of every earlier
attempt. Attempts on different keys never wait for each other.

Each key owns an ``asyncio.Lock``; its waiters are woken first-in
first-out, which gives the queue ordering. Locks are created on first
use and dropped once nobody holds or waits for them.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import NamedTuple, TypeVar

from tablebook.app.core.errors import BookingTimeout, DuplicateBooking, NoCapacity
from tablebook.app.db.store import ReservationStore
from tablebook.app.models import Customer, Reservation, Restaurant, Table
from tablebook.app.services.intervals import Interval, any_overlap, make_interval
from tablebook.app.services.slots import occupied_intervals

logger = logging.getLogger("tablebook.services.serializer")

T = TypeVar("T")


class LockKey(NamedTuple):
    sector_id: str
    slot: datetime  # UTC, truncated to the minute


def lock_key(sector_id: str, start: datetime) -> LockKey:
    slot = start.astimezone(timezone.utc).replace(second=0, microsecond=0)
    return LockKey(sector_id, slot)


class _BodyTimeout(Exception):
    """Carries a timeout raised by the body so it is not mistaken for the deadline."""


@dataclass
class _Queue:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class BookingSerializer:
    def __init__(self, store: ReservationStore, timeout: float | None = None) -> None:
        self._store = store
        self._timeout = timeout
        self._queues: dict[LockKey, _Queue] = {}

    def pending(self, key: LockKey) -> int:
        """Number of attempts holding or waiting on ``key``."""
        queue = self._queues.get(key)
        return queue.users if queue else 0

    async def run(self, key: LockKey, body: Callable[[], Awaitable[T]]) -> T:
        """Run ``body`` once every earlier attempt on ``key`` has settled.

        A failing body only fails its own caller. When a timeout is
        configured and expires, the attempt is withdrawn from the queue
        (or cancelled mid-body, releasing the lock) and BookingTimeout is
        raised; later attempts keep their order.
        """
        queue = self._queues.get(key)
        if queue is None:
            queue = self._queues[key] = _Queue()
        queue.users += 1
        logger.debug("Queued attempt on %s (%d pending)", key, queue.users)

        try:
            if self._timeout is None:
                return await self._locked(queue.lock, body)
            return await asyncio.wait_for(self._locked(queue.lock, body), self._timeout)
        except _BodyTimeout as exc:
            raise exc.__cause__
        except asyncio.TimeoutError:
            logger.warning("Attempt on %s timed out after %.1fs", key, self._timeout)
            raise BookingTimeout(f"Booking attempt timed out after {self._timeout}s") from None
        finally:
            queue.users -= 1
            if queue.users == 0 and self._queues.get(key) is queue:
                del self._queues[key]

    @staticmethod
    async def _locked(lock: asyncio.Lock, body: Callable[[], Awaitable[T]]) -> T:
        async with lock:
            try:
                return await body()
            except asyncio.TimeoutError as exc:
                raise _BodyTimeout() from exc

    async def attempt_booking(
        self,
        *,
        restaurant: Restaurant,
        sector_id: str,
        start: datetime,
        end: datetime,
        party_size: int,
        customer: Customer,
        candidates: Sequence[Table],
        notes: str | None = None,
        idempotency_key: str | None = None,
    ) -> Reservation:
        """Assign the first free candidate table to [start, end) and persist it."""

        async def allocate() -> Reservation:
            duplicate = await self._store.find_duplicate(
                restaurant.id, sector_id, start, customer.email, customer.phone
            )
            if duplicate is not None:
                raise DuplicateBooking("Customer already has a reservation at this time")

            confirmed = await self._store.list_confirmed(restaurant.id, sector_id)
            occupied = occupied_intervals(confirmed, restaurant.timezone)
            wanted = make_interval(start, end, restaurant.timezone)

            table = _first_fit(wanted, candidates, occupied)
            if table is None:
                raise NoCapacity("All fitting tables are taken for this interval")

            reservation = await self._store.create_reservation(
                restaurant_id=restaurant.id,
                sector_id=sector_id,
                table_ids=[table.id],
                party_size=party_size,
                start=start,
                end=end,
                customer=customer,
                notes=notes,
                idempotency_key=idempotency_key,
            )
            logger.info("Allocated table %s to reservation %s", table.id, reservation.id)
            return reservation

        return await self.run(lock_key(sector_id, start), allocate)


def _first_fit(
    wanted: Interval,
    candidates: Sequence[Table],
    occupied: dict[str, list[Interval]],
) -> Table | None:
    for table in candidates:
        if not any_overlap(wanted, occupied.get(table.id, ())):
            return table
    return None
