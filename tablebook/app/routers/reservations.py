from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status

from tablebook.app.core.errors import BookingError
from tablebook.app.models import Customer
from tablebook.app.routers.deps import get_engine
from tablebook.app.routers.errors import to_http_exception
from tablebook.app.routers.schemas import CreateReservationIn, DayReservationsOut, ReservationOut
from tablebook.app.services.reservations import ReservationEngine

router = APIRouter()


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: CreateReservationIn,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    engine: ReservationEngine = Depends(get_engine),
) -> ReservationOut:
    if idempotency_key is None or not idempotency_key.strip():
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail={"error": "missing_or_invalid_idempotency_key"},
        )

    try:
        reservation, _ = await engine.book(
            idempotency_key,
            restaurant_id=payload.restaurant_id,
            sector_id=payload.sector_id,
            party_size=payload.party_size,
            start=payload.start_date_time,
            customer=Customer(**payload.customer.model_dump()),
            notes=payload.notes,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return ReservationOut(**reservation.model_dump())


@router.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_reservation(
    reservation_id: str,
    engine: ReservationEngine = Depends(get_engine),
) -> Response:
    try:
        await engine.cancel(reservation_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/reservations/day", response_model=DayReservationsOut)
async def reservations_for_day(
    restaurant_id: str = Query(min_length=1),
    date: str = Query(pattern=r"^\d{4}-\d{2}-\d{2}$"),
    sector_id: str | None = None,
    engine: ReservationEngine = Depends(get_engine),
) -> DayReservationsOut:
    try:
        items = await engine.list_day(restaurant_id, date, sector_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return DayReservationsOut(
        date=date,
        items=[ReservationOut(**item.model_dump()) for item in items],
    )
