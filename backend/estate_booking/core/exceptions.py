"""
Booking domain errors.

Services raise these instead of HTTPException so the lifecycle engine stays
usable outside a request. A single handler in main.py renders them as
``{"message": ..., "code": ...}`` with the status code carried by the class.
"""

from fastapi import status


class BookingError(Exception):
    """Base class for recoverable booking/listing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class OwnershipConflict(BookingError):
    """Acting user has no rights for the operation (e.g. booking own listing)."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "ownership_conflict"


class DuplicateBooking(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_booking"


class InvalidDuration(BookingError):
    code = "invalid_duration"


class InvalidTransition(BookingError):
    code = "invalid_transition"


class TransitionNotPermitted(InvalidTransition):
    """Transition exists but the acting user may not perform it."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "transition_not_permitted"


class ListingUnavailable(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "listing_unavailable"


class ConflictError(BookingError):
    """A conditional update lost a race with a concurrent writer."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
