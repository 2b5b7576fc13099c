from estate_booking.models.listing import Listing
from estate_booking.models.booking import Booking

__all__ = ["Listing", "Booking"]
