from datetime import date, datetime

from pydantic import BaseModel, Field

from tablebook.app.models import AvailabilitySlot, Customer, ReservationStatus


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=32)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=254)


class CreateReservationIn(BaseModel):
    restaurant_id: str = Field(min_length=1)
    sector_id: str = Field(min_length=1)
    party_size: int = Field(ge=1)
    # ISO 8601 with offset, e.g. "2025-09-08T20:00:00-03:00" or "2025-09-08T23:00:00Z"
    start_date_time: datetime
    customer: CustomerIn
    notes: str | None = Field(default=None, max_length=1024)


class ReservationOut(BaseModel):
    id: str
    restaurant_id: str
    sector_id: str
    table_ids: list[str]
    party_size: int
    start: datetime
    end: datetime
    status: ReservationStatus
    customer: Customer
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class AvailabilityOut(BaseModel):
    slot_minutes: int
    duration_minutes: int
    slots: list[AvailabilitySlot]


class DayReservationsOut(BaseModel):
    date: date
    items: list[ReservationOut]
