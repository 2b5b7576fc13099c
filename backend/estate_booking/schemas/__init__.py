from estate_booking.schemas.booking import BookingCreate, BookingReschedule, BookingResponse, BookingCheckResponse
from estate_booking.schemas.listing import (
    ListingCreate, ListingResponse, ListingBrowseResponse, ListingLockRequest,
    ListingAdminResponse, ListingDeleteResponse,
)
from estate_booking.schemas.payment import PaymentCallback

__all__ = [
    "BookingCreate", "BookingReschedule", "BookingResponse", "BookingCheckResponse",
    "ListingCreate", "ListingResponse", "ListingBrowseResponse", "ListingLockRequest",
    "ListingAdminResponse", "ListingDeleteResponse",
    "PaymentCallback",
]
