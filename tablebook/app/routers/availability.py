from datetime import datetime

from fastapi import APIRouter, Depends, Query

from tablebook.app.core.errors import BookingError
from tablebook.app.models import FloorPlan
from tablebook.app.routers.deps import get_engine
from tablebook.app.routers.errors import to_http_exception
from tablebook.app.routers.schemas import AvailabilityOut
from tablebook.app.services.reservations import ReservationEngine
from tablebook.app.services.slots import DURATION_MINUTES, SLOT_MINUTES

router = APIRouter()


@router.get("/availability", response_model=AvailabilityOut, response_model_exclude_none=True)
async def check_availability(
    restaurant_id: str = Query(min_length=1),
    sector_id: str = Query(min_length=1),
    date: str = Query(pattern=r"^\d{4}-\d{2}-\d{2}$"),
    party_size: int = Query(ge=1),
    engine: ReservationEngine = Depends(get_engine),
) -> AvailabilityOut:
    try:
        slots = await engine.availability(restaurant_id, sector_id, date, party_size)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return AvailabilityOut(
        slot_minutes=SLOT_MINUTES,
        duration_minutes=DURATION_MINUTES,
        slots=slots,
    )


@router.get("/availability/floor-plan", response_model=FloorPlan)
async def floor_plan(
    restaurant_id: str = Query(min_length=1),
    sector_id: str = Query(min_length=1),
    # ISO 8601 with offset; defaults to now.
    time: datetime | None = None,
    date: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    engine: ReservationEngine = Depends(get_engine),
) -> FloorPlan:
    try:
        return await engine.floor_plan(restaurant_id, sector_id, time, date)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
