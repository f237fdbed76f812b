from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, Field


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    # Reserved for a hold/confirm flow; the engine never produces it.
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class Shift(BaseModel):
    # Zero-padded "HH:mm", restaurant-local.
    start: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class Restaurant(BaseModel):
    id: str
    name: str = ""
    timezone: str  # IANA, e.g. "America/Argentina/Buenos_Aires"
    shifts: list[Shift] = Field(default_factory=list)


class Sector(BaseModel):
    id: str
    restaurant_id: str
    name: str = ""


class Table(BaseModel):
    id: str
    sector_id: str
    name: str = ""
    min_size: int = Field(ge=1)
    max_size: int = Field(ge=1)

    def fits(self, party_size: int) -> bool:
        return self.min_size <= party_size <= self.max_size


class Customer(BaseModel):
    name: str
    phone: str
    email: str


class Reservation(BaseModel):
    id: str
    restaurant_id: str
    sector_id: str
    # Always a single table today; the list leaves room for combined tables.
    table_ids: list[str]
    party_size: int
    start: datetime
    end: datetime
    status: ReservationStatus
    customer: Customer
    notes: str | None = None
    idempotency_key: str | None = None
    created_at: datetime
    updated_at: datetime


class AvailabilitySlot(BaseModel):
    start: datetime
    available: bool
    tables: list[str] | None = None
    reason: str | None = None


class SectorOverview(Sector):
    max_capacity: int


class SectorDetail(Sector):
    tables: list[Table]


class RestaurantOverview(Restaurant):
    sectors: list[SectorOverview]


class RestaurantDetail(Restaurant):
    sectors: list[SectorDetail]


class OccupyingReservation(BaseModel):
    customer_name: str
    time: str  # restaurant-local "HH:mm"
    party_size: int


class FloorPlanTable(Table):
    is_occupied: bool
    current_reservation: OccupyingReservation | None = None


class FloorPlan(BaseModel):
    restaurant_id: str
    sector_id: str
    sector_name: str
    reference_time: datetime
    tables: list[FloorPlanTable]
    slots: list[datetime]
