"""Failure categories raised by the booking engine.

Each error carries a stable ``code`` that clients can match on and a
free-form ``detail``. Transport status codes are assigned by the HTTP
layer (see ``tablebook.app.routers.errors``), never here.
"""


class BookingError(Exception):
    code = "booking_error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.code
        super().__init__(self.detail)


class InvalidInput(BookingError):
    """Malformed request, e.g. a naive or off-grid start time."""

    code = "invalid_input"


class OutOfWindow(BookingError):
    """The reservation interval fits no service shift."""

    code = "outside_service_window"


class NoCapacity(BookingError):
    """No table fits the party, or every fitting table is taken."""

    code = "no_capacity"


class DuplicateBooking(BookingError):
    code = "duplicate_reservation"


class NotFound(BookingError):
    code = "not_found"


class BookingTimeout(BookingError):
    """The attempt did not complete within the configured bound.

    Unlike the other categories this one is transient; the request may be
    retried with the same idempotency key.
    """

    code = "booking_timeout"
