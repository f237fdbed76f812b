"""The fixed 15-minute booking grid of a restaurant-local day."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta

from tablebook.app.models import AvailabilitySlot, Reservation, ReservationStatus, Restaurant, Table
from tablebook.app.services.intervals import Interval, any_overlap, make_interval, resolve_zone, shift_by
from tablebook.app.services.shifts import fits_shift
from tablebook.app.services.tables import select_candidates

SLOT_MINUTES = 15
DURATION_MINUTES = 90
SLOTS_PER_DAY = 24 * 60 // SLOT_MINUTES

REASON_CLOSED = "closed"
REASON_NO_CAPACITY = "no_capacity"


def slot_starts(day: date, restaurant: Restaurant) -> list[datetime]:
    """All 96 starts of ``day`` (00:00 .. 23:45 local wall clock)."""
    midnight = datetime.combine(day, time(0, 0), tzinfo=resolve_zone(restaurant.timezone))
    return [midnight + timedelta(minutes=i * SLOT_MINUTES) for i in range(SLOTS_PER_DAY)]


def slot_end(start: datetime) -> datetime:
    return shift_by(start, DURATION_MINUTES)


def is_slot_allowed(start: datetime, restaurant: Restaurant) -> bool:
    return fits_shift(start, slot_end(start), restaurant.shifts)


def is_on_grid(local_start: datetime) -> bool:
    return (
        local_start.minute % SLOT_MINUTES == 0
        and local_start.second == 0
        and local_start.microsecond == 0
    )


def potential_slots(day: date, restaurant: Restaurant) -> list[datetime]:
    """Starts of ``day`` that a booking could use, ignoring occupancy."""
    return [start for start in slot_starts(day, restaurant) if is_slot_allowed(start, restaurant)]


def occupied_intervals(
    reservations: Iterable[Reservation],
    tz_name: str,
) -> dict[str, list[Interval]]:
    """CONFIRMED intervals per table id, normalized into ``tz_name``."""
    by_table: dict[str, list[Interval]] = defaultdict(list)
    for reservation in reservations:
        if reservation.status is not ReservationStatus.CONFIRMED:
            continue
        interval = make_interval(reservation.start, reservation.end, tz_name)
        for table_id in reservation.table_ids:
            by_table[table_id].append(interval)
    return by_table


def availability_slots(
    day: date,
    restaurant: Restaurant,
    tables: Sequence[Table],
    reservations: Iterable[Reservation],
    party_size: int,
) -> list[AvailabilitySlot]:
    """One descriptor per grid slot, in chronological order.

    ``tables`` are the sector's tables and ``reservations`` its bookings;
    both are filtered here, so callers may pass them unfiltered.
    """
    candidates = select_candidates(tables, party_size)
    occupied = occupied_intervals(reservations, restaurant.timezone)

    slots: list[AvailabilitySlot] = []
    for start in slot_starts(day, restaurant):
        end = slot_end(start)

        if not fits_shift(start, end, restaurant.shifts):
            slots.append(AvailabilitySlot(start=start, available=False, reason=REASON_CLOSED))
            continue

        if not candidates:
            slots.append(AvailabilitySlot(start=start, available=False, reason=REASON_NO_CAPACITY))
            continue

        wanted = Interval(start, end)
        free = [table.id for table in candidates if not any_overlap(wanted, occupied.get(table.id, ()))]
        if free:
            slots.append(AvailabilitySlot(start=start, available=True, tables=free))
        else:
            slots.append(AvailabilitySlot(start=start, available=False, reason=REASON_NO_CAPACITY))

    return slots
