from fastapi import Request

from tablebook.app.services.reservations import ReservationEngine


def get_engine(request: Request) -> ReservationEngine:
    """The engine built by the app lifespan."""
    return request.app.state.engine
