"""Client idempotency keys bound to the reservation they produced.

Bindings live in a ``BindingMap``: an in-process dict by default, or
Redis when several engine instances must share them. The store's
``idempotency_key`` column is the durable copy and is consulted when the
map misses (e.g. after a restart).
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Protocol

import redis.asyncio as redis

from tablebook.app.db.store import DuplicateIdempotencyKey, ReservationStore
from tablebook.app.models import Reservation, ReservationStatus

logger = logging.getLogger("tablebook.services.idempotency")


class BindingMap(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, reservation_id: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryBindings:
    def __init__(self) -> None:
        self._bindings: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._bindings.get(key)

    async def set(self, key: str, reservation_id: str) -> None:
        self._bindings[key] = reservation_id

    async def delete(self, key: str) -> None:
        self._bindings.pop(key, None)


class RedisBindings:
    # No TTL: a binding lives as long as its reservation stays CONFIRMED.
    def __init__(self, client: redis.Redis, prefix: str = "idem") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._client.get(self._key(key))

    async def set(self, key: str, reservation_id: str) -> None:
        await self._client.set(self._key(key), reservation_id)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))


class IdempotencyLedger:
    def __init__(self, store: ReservationStore, bindings: BindingMap | None = None) -> None:
        self._store = store
        self._bindings = bindings if bindings is not None else InMemoryBindings()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_users: dict[str, int] = {}

    @asynccontextmanager
    async def _hold(self, key: str) -> AsyncIterator[None]:
        # Same-key requests queue here so a retry racing the original
        # observes its binding instead of booking a second time.
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_users[key] -= 1
            if self._key_users[key] == 0:
                del self._key_users[key]
                del self._key_locks[key]

    async def lookup(self, key: str) -> Reservation | None:
        """The CONFIRMED reservation bound to ``key``, if any."""
        reservation_id = await self._bindings.get(key)
        if reservation_id is not None:
            reservation = await self._store.get_reservation(reservation_id)
            if reservation is not None and reservation.status is ReservationStatus.CONFIRMED:
                return reservation
            await self._bindings.delete(key)

        reservation = await self._store.find_by_idempotency_key(key)
        if reservation is None or reservation.status is not ReservationStatus.CONFIRMED:
            return None
        await self._bindings.set(key, reservation.id)
        return reservation

    async def book_once(
        self,
        key: str,
        book: Callable[[], Awaitable[Reservation]],
    ) -> tuple[Reservation, bool]:
        """Return the reservation for ``key``, calling ``book`` at most once.

        The flag is True when the result is a replay of an earlier booking.
        A failing ``book`` leaves the key unbound.
        """
        async with self._hold(key):
            existing = await self.lookup(key)
            if existing is not None:
                return existing, True

            try:
                reservation = await book()
            except DuplicateIdempotencyKey:
                # Bound by another engine instance between lookup and insert.
                existing = await self.lookup(key)
                if existing is None:
                    raise
                return existing, True

            await self._bindings.set(key, reservation.id)
            return reservation, False

    async def release(self, reservation: Reservation) -> None:
        """Unbind the reservation's key so it can be reused."""
        if reservation.idempotency_key:
            await self._bindings.delete(reservation.idempotency_key)
            logger.debug("Released idempotency key for reservation %s", reservation.id)
        await self._store.clear_idempotency_key(reservation.id)
