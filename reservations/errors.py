"""
Error taxonomy for the reservation core.

Raised by the ledger, engine, token authority and reschedule coordinator;
rendered by the Flask error handler registered in ``create_app``.
"""


class ReservationError(Exception):
    """Base class. ``status_code`` is the HTTP status the error maps to."""

    status_code = 500
    default_message = "Reservation failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class BadRequest(ReservationError):
    """Missing identifiers, malformed time ranges, service mismatch, bad token."""

    status_code = 400
    default_message = "Bad request"


class Forbidden(ReservationError):
    """Requester lacks ownership or role."""

    status_code = 403
    default_message = "Forbidden"


class NotFound(ReservationError):
    status_code = 404
    default_message = "Not found"


class Conflict(ReservationError):
    """Slot no longer OPEN at claim time. Never retried automatically."""

    status_code = 409
    default_message = "Slot already booked"


class Internal(ReservationError):
    """Storage failure; the transaction has been rolled back."""

    status_code = 500
    default_message = "Internal error"
