from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import uuid4

from tablebook.app.db.store import DuplicateIdempotencyKey
from tablebook.app.models import Customer, Reservation, ReservationStatus, Restaurant, Sector, Table
from tablebook.app.services.intervals import to_zone


class InMemoryReservationStore:
    """Process-local ReservationStore, used for tests and local runs."""

    def __init__(self) -> None:
        self.restaurants: dict[str, Restaurant] = {}
        self.sectors: dict[str, Sector] = {}
        self.tables: dict[str, Table] = {}
        self.reservations: dict[str, Reservation] = {}

    # Seeding helpers are synchronous so fixtures can call them directly.

    def add_restaurant(self, restaurant: Restaurant) -> Restaurant:
        self.restaurants[restaurant.id] = restaurant
        return restaurant

    def add_sector(self, sector: Sector) -> Sector:
        self.sectors[sector.id] = sector
        return sector

    def add_table(self, table: Table) -> Table:
        self.tables[table.id] = table
        return table

    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        return self.restaurants.get(restaurant_id)

    async def list_restaurants(self) -> list[Restaurant]:
        return sorted(self.restaurants.values(), key=lambda r: r.name)

    async def get_sector(self, sector_id: str) -> Sector | None:
        return self.sectors.get(sector_id)

    async def list_sectors(self, restaurant_id: str) -> list[Sector]:
        return [s for s in self.sectors.values() if s.restaurant_id == restaurant_id]

    async def list_tables(self, sector_id: str, party_size: int | None = None) -> list[Table]:
        tables = [t for t in self.tables.values() if t.sector_id == sector_id]
        if party_size is not None:
            tables = [t for t in tables if t.fits(party_size)]
        return sorted(tables, key=lambda t: t.id)

    async def list_confirmed(self, restaurant_id: str, sector_id: str) -> list[Reservation]:
        return sorted(
            (
                r
                for r in self.reservations.values()
                if r.restaurant_id == restaurant_id
                and r.sector_id == sector_id
                and r.status is ReservationStatus.CONFIRMED
            ),
            key=lambda r: r.start.timestamp(),
        )

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        return self.reservations.get(reservation_id)

    async def find_by_idempotency_key(self, key: str) -> Reservation | None:
        for reservation in self.reservations.values():
            if reservation.idempotency_key == key:
                return reservation
        return None

    async def find_duplicate(
        self,
        restaurant_id: str,
        sector_id: str,
        start: datetime,
        email: str,
        phone: str,
    ) -> Reservation | None:
        for reservation in await self.list_confirmed(restaurant_id, sector_id):
            if reservation.start.timestamp() != start.timestamp():
                continue
            if reservation.customer.email == email or reservation.customer.phone == phone:
                return reservation
        return None

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
    ) -> Reservation:
        if idempotency_key is not None and await self.find_by_idempotency_key(idempotency_key):
            raise DuplicateIdempotencyKey(idempotency_key)

        now = datetime.now(timezone.utc)
        reservation = Reservation(
            id=str(uuid4()),
            restaurant_id=restaurant_id,
            sector_id=sector_id,
            table_ids=list(table_ids),
            party_size=party_size,
            start=start,
            end=end,
            status=ReservationStatus.CONFIRMED,
            customer=customer,
            notes=notes,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.reservations[reservation.id] = reservation
        return reservation

    async def update_status(self, reservation_id: str, status: ReservationStatus) -> Reservation | None:
        current = self.reservations.get(reservation_id)
        if current is None:
            return None
        updated = current.model_copy(update={"status": status, "updated_at": datetime.now(timezone.utc)})
        self.reservations[reservation_id] = updated
        return updated

    async def clear_idempotency_key(self, reservation_id: str) -> None:
        current = self.reservations.get(reservation_id)
        if current is not None:
            self.reservations[reservation_id] = current.model_copy(update={"idempotency_key": None})

    async def list_by_day(
        self,
        restaurant_id: str,
        day: date,
        tz_name: str,
        sector_id: str | None = None,
    ) -> list[Reservation]:
        items = [
            r
            for r in self.reservations.values()
            if r.restaurant_id == restaurant_id
            and (sector_id is None or r.sector_id == sector_id)
            and to_zone(r.start, tz_name).date() == day
        ]
        return sorted(items, key=lambda r: r.start.timestamp())
