from __future__ import annotations

from datetime import date, datetime, timedelta

from pydantic import TypeAdapter, ValidationError

from tablebook.app.core.errors import InvalidInput, NotFound
from tablebook.app.db.store import ReservationStore
from tablebook.app.models import (
    AvailabilitySlot,
    FloorPlan,
    FloorPlanTable,
    OccupyingReservation,
    Restaurant,
    Sector,
)
from tablebook.app.services.intervals import Interval, make_interval, to_zone
from tablebook.app.services.slots import SLOT_MINUTES, availability_slots, potential_slots


async def load_restaurant(store: ReservationStore, restaurant_id: str) -> Restaurant:
    restaurant = await store.get_restaurant(restaurant_id)
    if restaurant is None:
        raise NotFound(f"Restaurant {restaurant_id} not found")
    return restaurant


async def load_sector(store: ReservationStore, restaurant: Restaurant, sector_id: str) -> Sector:
    sector = await store.get_sector(sector_id)
    if sector is None or sector.restaurant_id != restaurant.id:
        raise NotFound(f"Sector {sector_id} not found in restaurant {restaurant.id}")
    return sector


def parse_day(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInput(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


_INSTANT = TypeAdapter(datetime)


def parse_instant(value: datetime | str) -> datetime:
    if isinstance(value, str):
        try:
            value = _INSTANT.validate_python(value)
        except ValidationError as exc:
            raise InvalidInput(f"Invalid datetime {value!r}, expected ISO 8601") from exc
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise InvalidInput("datetime must include timezone information")
    return value


async def get_availability(
    store: ReservationStore,
    restaurant_id: str,
    sector_id: str,
    day: date | str,
    party_size: int,
) -> list[AvailabilitySlot]:
    if party_size < 1:
        raise InvalidInput("party_size must be a positive integer")
    day = parse_day(day)
    restaurant = await load_restaurant(store, restaurant_id)
    await load_sector(store, restaurant, sector_id)

    tables = await store.list_tables(sector_id)
    reservations = await store.list_confirmed(restaurant.id, sector_id)
    return availability_slots(day, restaurant, tables, reservations, party_size)


async def get_potential_slots(store: ReservationStore, restaurant_id: str, day: date | str) -> list[datetime]:
    restaurant = await load_restaurant(store, restaurant_id)
    return potential_slots(parse_day(day), restaurant)


async def build_floor_plan(
    store: ReservationStore,
    restaurant_id: str,
    sector_id: str,
    reference_time: datetime | str | None = None,
    day: date | str | None = None,
) -> FloorPlan:
    """Which sector tables are occupied during [reference, reference + 15m)."""
    restaurant = await load_restaurant(store, restaurant_id)
    sector = await load_sector(store, restaurant, sector_id)

    if reference_time is None:
        reference = to_zone(datetime.now().astimezone(), restaurant.timezone)
    else:
        reference = to_zone(parse_instant(reference_time), restaurant.timezone)
    slot_day = parse_day(day) if day is not None else reference.date()

    window = Interval(reference, reference + timedelta(minutes=SLOT_MINUTES))
    active = [
        reservation
        for reservation in await store.list_confirmed(restaurant.id, sector.id)
        if window.overlaps(make_interval(reservation.start, reservation.end, restaurant.timezone))
    ]

    tables = []
    for table in await store.list_tables(sector.id):
        occupying = next((r for r in active if table.id in r.table_ids), None)
        current = None
        if occupying is not None:
            current = OccupyingReservation(
                customer_name=occupying.customer.name,
                time=to_zone(occupying.start, restaurant.timezone).strftime("%H:%M"),
                party_size=occupying.party_size,
            )
        tables.append(
            FloorPlanTable(
                **table.model_dump(),
                is_occupied=occupying is not None,
                current_reservation=current,
            )
        )

    return FloorPlan(
        restaurant_id=restaurant.id,
        sector_id=sector.id,
        sector_name=sector.name,
        reference_time=reference,
        tables=tables,
        slots=potential_slots(slot_day, restaurant),
    )
