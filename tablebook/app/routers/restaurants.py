from fastapi import APIRouter, Depends

from tablebook.app.core.errors import BookingError
from tablebook.app.models import RestaurantDetail, RestaurantOverview
from tablebook.app.routers.deps import get_engine
from tablebook.app.routers.errors import to_http_exception
from tablebook.app.services.reservations import ReservationEngine

router = APIRouter()


@router.get("/restaurants", response_model=list[RestaurantOverview])
async def list_restaurants(engine: ReservationEngine = Depends(get_engine)) -> list[RestaurantOverview]:
    return await engine.list_restaurants()


@router.get("/restaurants/{restaurant_id}", response_model=RestaurantDetail)
async def get_restaurant(
    restaurant_id: str,
    engine: ReservationEngine = Depends(get_engine),
) -> RestaurantDetail:
    try:
        return await engine.restaurant_detail(restaurant_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
