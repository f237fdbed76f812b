from __future__ import annotations

import logging
from datetime import date, datetime

from tablebook.app.core.errors import BookingError, InvalidInput, NoCapacity, NotFound, OutOfWindow
from tablebook.app.db.store import ReservationStore
from tablebook.app.models import (
    AvailabilitySlot,
    Customer,
    FloorPlan,
    Reservation,
    ReservationStatus,
    RestaurantDetail,
    RestaurantOverview,
    SectorDetail,
    SectorOverview,
)
from tablebook.app.services import availability
from tablebook.app.services.idempotency import BindingMap, IdempotencyLedger
from tablebook.app.services.intervals import to_zone
from tablebook.app.services.serializer import BookingSerializer, lock_key
from tablebook.app.services.shifts import fits_shift
from tablebook.app.services.slots import is_on_grid, slot_end
from tablebook.app.services.tables import select_candidates

logger = logging.getLogger("tablebook.services.reservations")


def _localized(reservation: Reservation, tz_name: str) -> Reservation:
    return reservation.model_copy(
        update={
            "start": to_zone(reservation.start, tz_name),
            "end": to_zone(reservation.end, tz_name),
        }
    )


class ReservationEngine:
    """Availability queries and race-free booking for one set of restaurants.

    All mutable state (lock queues, idempotency bindings) belongs to the
    instance, so separate engines never share it.
    """

    def __init__(
        self,
        store: ReservationStore,
        bindings: BindingMap | None = None,
        booking_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.ledger = IdempotencyLedger(store, bindings)
        self.serializer = BookingSerializer(store, timeout=booking_timeout)

    async def availability(
        self,
        restaurant_id: str,
        sector_id: str,
        day: date | str,
        party_size: int,
    ) -> list[AvailabilitySlot]:
        return await availability.get_availability(self.store, restaurant_id, sector_id, day, party_size)

    async def potential_slots(self, restaurant_id: str, day: date | str) -> list[datetime]:
        return await availability.get_potential_slots(self.store, restaurant_id, day)

    async def floor_plan(
        self,
        restaurant_id: str,
        sector_id: str,
        reference_time: datetime | str | None = None,
        day: date | str | None = None,
    ) -> FloorPlan:
        return await availability.build_floor_plan(self.store, restaurant_id, sector_id, reference_time, day)

    async def book(
        self,
        idempotency_key: str,
        *,
        restaurant_id: str,
        sector_id: str,
        party_size: int,
        start: datetime | str,
        customer: Customer,
        notes: str | None = None,
    ) -> tuple[Reservation, bool]:
        """Create a reservation, or replay the one already bound to the key.

        Returns the reservation and whether it was a replay.
        """
        if not idempotency_key or not idempotency_key.strip():
            raise InvalidInput("Idempotency key is required")

        async def create() -> Reservation:
            return await self._create(
                idempotency_key,
                restaurant_id=restaurant_id,
                sector_id=sector_id,
                party_size=party_size,
                start=start,
                customer=customer,
                notes=notes,
            )

        try:
            reservation, replayed = await self.ledger.book_once(idempotency_key, create)
        except BookingError as exc:
            logger.info("Booking rejected (%s): %s", exc.code, exc.detail)
            raise

        if replayed:
            logger.info("Replayed reservation %s for idempotency key", reservation.id)
            restaurant = await self.store.get_restaurant(reservation.restaurant_id)
            if restaurant is not None:
                reservation = _localized(reservation, restaurant.timezone)
        else:
            logger.info(
                "Reservation %s confirmed on table %s at %s",
                reservation.id,
                reservation.table_ids[0],
                reservation.start.isoformat(),
            )
        return reservation, replayed

    async def _create(
        self,
        idempotency_key: str,
        *,
        restaurant_id: str,
        sector_id: str,
        party_size: int,
        start: datetime | str,
        customer: Customer,
        notes: str | None,
    ) -> Reservation:
        if party_size < 1:
            raise InvalidInput("party_size must be a positive integer")

        restaurant = await availability.load_restaurant(self.store, restaurant_id)
        await availability.load_sector(self.store, restaurant, sector_id)

        local_start = to_zone(availability.parse_instant(start), restaurant.timezone)
        if not is_on_grid(local_start):
            raise InvalidInput("Start time must be on a 15-minute grid")

        local_end = slot_end(local_start)
        if not fits_shift(local_start, local_end, restaurant.shifts):
            raise OutOfWindow("Reservation falls outside the service windows")

        candidates = select_candidates(await self.store.list_tables(sector_id, party_size), party_size)
        if not candidates:
            raise NoCapacity(f"No table in sector {sector_id} seats {party_size}")

        reservation = await self.serializer.attempt_booking(
            restaurant=restaurant,
            sector_id=sector_id,
            start=local_start,
            end=local_end,
            party_size=party_size,
            customer=customer,
            candidates=candidates,
            notes=notes,
            idempotency_key=idempotency_key,
        )
        return _localized(reservation, restaurant.timezone)

    async def cancel(self, reservation_id: str) -> Reservation:
        """Cancel a CONFIRMED reservation and free its idempotency key."""
        reservation = await self.store.get_reservation(reservation_id)
        if reservation is None or reservation.status is not ReservationStatus.CONFIRMED:
            raise NotFound(f"Reservation {reservation_id} not found or already cancelled")

        async def cancel_locked() -> Reservation:
            current = await self.store.get_reservation(reservation_id)
            if current is None or current.status is not ReservationStatus.CONFIRMED:
                raise NotFound(f"Reservation {reservation_id} not found or already cancelled")
            updated = await self.store.update_status(reservation_id, ReservationStatus.CANCELLED)
            if updated is None:
                raise NotFound(f"Reservation {reservation_id} not found")
            await self.ledger.release(current)
            return updated.model_copy(update={"idempotency_key": None})

        cancelled = await self.serializer.run(lock_key(reservation.sector_id, reservation.start), cancel_locked)
        logger.info("Reservation %s cancelled", reservation_id)
        return cancelled

    async def list_day(
        self,
        restaurant_id: str,
        day: date | str,
        sector_id: str | None = None,
    ) -> list[Reservation]:
        restaurant = await availability.load_restaurant(self.store, restaurant_id)
        items = await self.store.list_by_day(restaurant.id, availability.parse_day(day), restaurant.timezone, sector_id)
        return [_localized(item, restaurant.timezone) for item in items]

    async def list_restaurants(self) -> list[RestaurantOverview]:
        overviews = []
        for restaurant in await self.store.list_restaurants():
            sectors = []
            for sector in await self.store.list_sectors(restaurant.id):
                tables = await self.store.list_tables(sector.id)
                sectors.append(
                    SectorOverview(
                        **sector.model_dump(),
                        max_capacity=max((t.max_size for t in tables), default=0),
                    )
                )
            overviews.append(RestaurantOverview(**restaurant.model_dump(), sectors=sectors))
        return overviews

    async def restaurant_detail(self, restaurant_id: str) -> RestaurantDetail:
        restaurant = await availability.load_restaurant(self.store, restaurant_id)
        sectors = [
            SectorDetail(**sector.model_dump(), tables=await self.store.list_tables(sector.id))
            for sector in await self.store.list_sectors(restaurant.id)
        ]
        return RestaurantDetail(**restaurant.model_dump(), sectors=sectors)
