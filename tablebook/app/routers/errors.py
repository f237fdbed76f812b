from fastapi import HTTPException, status

from tablebook.app.core.errors import (
    BookingError,
    BookingTimeout,
    DuplicateBooking,
    InvalidInput,
    NoCapacity,
    NotFound,
    OutOfWindow,
)

STATUS_BY_ERROR: dict[type[BookingError], int] = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    OutOfWindow: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoCapacity: status.HTTP_409_CONFLICT,
    DuplicateBooking: status.HTTP_409_CONFLICT,
    BookingTimeout: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: BookingError) -> HTTPException:
    """Map an engine failure to the response the API returns for it."""
    code = STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(code, detail={"error": exc.code, "detail": exc.detail})
