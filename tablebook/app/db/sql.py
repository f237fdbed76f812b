from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from uuid import uuid4

from asyncpg import exceptions as asyncpg_exc
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tablebook.app.core.errors import NoCapacity
from tablebook.app.db.store import DuplicateIdempotencyKey
from tablebook.app.models import Customer, Reservation, ReservationStatus, Restaurant, Sector, Table

logger = logging.getLogger("tablebook.db.sql")

_RESERVATION_SELECT = """
    SELECT r.id, r.restaurant_id, r.sector_id, r.party_size, r.start_ts, r.end_ts,
           r.status, r.customer_name, r.customer_phone, r.customer_email, r.notes,
           r.idempotency_key, r.created_at, r.updated_at,
           COALESCE(
             array_agg(rt.table_id ORDER BY rt.table_id) FILTER (WHERE rt.table_id IS NOT NULL),
             '{}'
           ) AS table_ids
    FROM reservation r
    LEFT JOIN reservation_table rt ON rt.reservation_id = r.id
"""


def _root_cause(exc: Exception) -> BaseException:
    orig = getattr(exc, "orig", exc)
    return getattr(orig, "__cause__", None) or orig


def _restaurant(row) -> Restaurant:
    shifts = row.shifts
    if isinstance(shifts, str):
        shifts = json.loads(shifts)
    return Restaurant(id=row.id, name=row.name, timezone=row.timezone, shifts=shifts or [])


def _reservation(row) -> Reservation:
    return Reservation(
        id=row.id,
        restaurant_id=row.restaurant_id,
        sector_id=row.sector_id,
        table_ids=list(row.table_ids),
        party_size=row.party_size,
        start=row.start_ts,
        end=row.end_ts,
        status=ReservationStatus(row.status),
        customer=Customer(name=row.customer_name, phone=row.customer_phone, email=row.customer_email),
        notes=row.notes,
        idempotency_key=row.idempotency_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlReservationStore:
    """ReservationStore backed by Postgres (see the Alembic revision for the schema).

    The ``reservation_table`` exclusion constraint refuses overlapping
    active intervals on one table. The engine never relies on it within a
    process; it guards against a second engine instance booking the
    same table concurrently.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def _fetch_reservations(self, where: str, params: dict) -> list[Reservation]:
        query = text(f"{_RESERVATION_SELECT} WHERE {where} GROUP BY r.id ORDER BY r.start_ts")
        async with self._sessionmaker() as session:
            result = await session.execute(query, params)
            return [_reservation(row) for row in result]

    async def _fetch_reservation(self, where: str, params: dict) -> Reservation | None:
        rows = await self._fetch_reservations(where, params)
        return rows[0] if rows else None

    async def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        async with self._sessionmaker() as session:
            result = await session.execute(
                text("SELECT id, name, timezone, shifts FROM restaurant WHERE id = :id"),
                {"id": restaurant_id},
            )
            row = result.one_or_none()
        return _restaurant(row) if row is not None else None

    async def list_restaurants(self) -> list[Restaurant]:
        async with self._sessionmaker() as session:
            result = await session.execute(text("SELECT id, name, timezone, shifts FROM restaurant ORDER BY name"))
            return [_restaurant(row) for row in result]

    async def get_sector(self, sector_id: str) -> Sector | None:
        async with self._sessionmaker() as session:
            result = await session.execute(
                text("SELECT id, restaurant_id, name FROM sector WHERE id = :id"),
                {"id": sector_id},
            )
            row = result.mappings().one_or_none()
        return Sector(**row) if row is not None else None

    async def list_sectors(self, restaurant_id: str) -> list[Sector]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                text("SELECT id, restaurant_id, name FROM sector WHERE restaurant_id = :restaurant_id ORDER BY name"),
                {"restaurant_id": restaurant_id},
            )
            return [Sector(**row) for row in result.mappings()]

    async def list_tables(self, sector_id: str, party_size: int | None = None) -> list[Table]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                text(
                    """
                    SELECT id, sector_id, name, min_size, max_size
                    FROM dining_table
                    WHERE sector_id = :sector_id
                      AND (CAST(:party_size AS integer) IS NULL
                           OR (min_size <= :party_size AND :party_size <= max_size))
                    ORDER BY id
                    """
                ),
                {"sector_id": sector_id, "party_size": party_size},
            )
            return [Table(**row) for row in result.mappings()]

    async def list_confirmed(self, restaurant_id: str, sector_id: str) -> list[Reservation]:
        return await self._fetch_reservations(
            "r.restaurant_id = :restaurant_id AND r.sector_id = :sector_id AND r.status = 'CONFIRMED'",
            {"restaurant_id": restaurant_id, "sector_id": sector_id},
        )

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        return await self._fetch_reservation("r.id = :id", {"id": reservation_id})

    async def find_by_idempotency_key(self, key: str) -> Reservation | None:
        return await self._fetch_reservation("r.idempotency_key = :key", {"key": key})

    async def find_duplicate(
        self,
        restaurant_id: str,
        sector_id: str,
        start: datetime,
        email: str,
        phone: str,
    ) -> Reservation | None:
        return await self._fetch_reservation(
            """
            r.restaurant_id = :restaurant_id
            AND r.sector_id = :sector_id
            AND r.start_ts = :start_ts
            AND r.status = 'CONFIRMED'
            AND (r.customer_email = :email OR r.customer_phone = :phone)
            """,
            {
                "restaurant_id": restaurant_id,
                "sector_id": sector_id,
                "start_ts": start,
                "email": email,
                "phone": phone,
            },
        )

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
        reservation_id = str(uuid4())
        now = datetime.now(timezone.utc)

        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    await session.execute(
                        text(
                            """
                            INSERT INTO reservation (
                              id, restaurant_id, sector_id, party_size, start_ts, end_ts, status,
                              customer_name, customer_phone, customer_email, notes,
                              idempotency_key, created_at, updated_at
                            ) VALUES (
                              :id, :restaurant_id, :sector_id, :party_size, :start_ts, :end_ts, 'CONFIRMED',
                              :name, :phone, :email, :notes,
                              :idempotency_key, :now, :now
                            )
                            """
                        ),
                        {
                            "id": reservation_id,
                            "restaurant_id": restaurant_id,
                            "sector_id": sector_id,
                            "party_size": party_size,
                            "start_ts": start,
                            "end_ts": end,
                            "name": customer.name,
                            "phone": customer.phone,
                            "email": customer.email,
                            "notes": notes,
                            "idempotency_key": idempotency_key,
                            "now": now,
                        },
                    )
                    for table_id in table_ids:
                        await session.execute(
                            text(
                                """
                                INSERT INTO reservation_table (reservation_id, table_id, during, active)
                                VALUES (
                                  :reservation_id, :table_id,
                                  tstzrange(CAST(:start_ts AS timestamptz), CAST(:end_ts AS timestamptz), '[)'),
                                  true
                                )
                                """
                            ),
                            {
                                "reservation_id": reservation_id,
                                "table_id": table_id,
                                "start_ts": start,
                                "end_ts": end,
                            },
                        )
        except IntegrityError as exc:
            cause = _root_cause(exc)
            if isinstance(cause, asyncpg_exc.ExclusionViolationError):
                logger.warning("Overlap guard rejected reservation on tables %s", table_ids)
                raise NoCapacity("Table was booked concurrently") from exc
            if isinstance(cause, asyncpg_exc.UniqueViolationError) and "idempotency" in str(cause):
                raise DuplicateIdempotencyKey(idempotency_key) from exc
            raise

        created = await self.get_reservation(reservation_id)
        if created is None:
            raise RuntimeError(f"Reservation {reservation_id} not readable after insert")
        return created

    async def update_status(self, reservation_id: str, status: ReservationStatus) -> Reservation | None:
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    text("UPDATE reservation SET status = :status, updated_at = :now WHERE id = :id RETURNING id"),
                    {"status": status.value, "now": datetime.now(timezone.utc), "id": reservation_id},
                )
                if result.first() is None:
                    return None
                await session.execute(
                    text("UPDATE reservation_table SET active = :active WHERE reservation_id = :id"),
                    {"active": status is ReservationStatus.CONFIRMED, "id": reservation_id},
                )
        return await self.get_reservation(reservation_id)

    async def clear_idempotency_key(self, reservation_id: str) -> None:
        async with self._sessionmaker() as session:
            async with session.begin():
                await session.execute(
                    text("UPDATE reservation SET idempotency_key = NULL WHERE id = :id"),
                    {"id": reservation_id},
                )

    async def list_by_day(
        self,
        restaurant_id: str,
        day: date,
        tz_name: str,
        sector_id: str | None = None,
    ) -> list[Reservation]:
        return await self._fetch_reservations(
            """
            r.restaurant_id = :restaurant_id
            AND CAST(timezone(:tz, r.start_ts) AS date) = :day
            AND (CAST(:sector_id AS text) IS NULL OR r.sector_id = :sector_id)
            """,
            {"restaurant_id": restaurant_id, "tz": tz_name, "day": day, "sector_id": sector_id},
        )
