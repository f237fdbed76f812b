from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from tablebook.app.models import Customer, Reservation, ReservationStatus, Restaurant, Sector, Table


class ReservationStore(Protocol):
    """Persistence the booking engine reads from and writes to.

    The engine serializes its own writes per lock key and assumes no
    transactional isolation beyond single statements.
    """

    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None: ...

    async def list_restaurants(self) -> list[Restaurant]: ...

    async def get_sector(self, sector_id: str) -> Sector | None: ...

    async def list_sectors(self, restaurant_id: str) -> list[Sector]: ...

    async def list_tables(self, sector_id: str, party_size: int | None = None) -> list[Table]: ...

    async def list_confirmed(self, restaurant_id: str, sector_id: str) -> list[Reservation]: ...

    async def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    async def find_by_idempotency_key(self, key: str) -> Reservation | None: ...

    async def find_duplicate(
        self,
        restaurant_id: str,
        sector_id: str,
        start: datetime,
        email: str,
        phone: str,
    ) -> Reservation | None: ...

    async def create_reservation(
        self,
        *,
        restaurant_id: str,
        sector_id: str,
        table_ids: list[str],
        party_size: int,
        start: datetime,
        end: datetime,
        customer: Customer,
        notes: str | None,
        idempotency_key: str | None,
    ) -> Reservation: ...

    async def update_status(self, reservation_id: str, status: ReservationStatus) -> Reservation | None: ...

    async def clear_idempotency_key(self, reservation_id: str) -> None: ...

    async def list_by_day(
        self,
        restaurant_id: str,
        day: date,
        tz_name: str,
        sector_id: str | None = None,
    ) -> list[Reservation]: ...


class DuplicateIdempotencyKey(Exception):
    """Raised by ``create_reservation`` when the key is already bound."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Idempotency key {key!r} is already bound")
