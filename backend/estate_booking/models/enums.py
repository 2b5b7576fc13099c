"""
Status vocabularies shared by models, schemas and the lifecycle engine.
"""

from enum import Enum


class RentOrSale(str, Enum):
    RENT = "Rent"
    SALE = "Sale"


class ListingType(str, Enum):
    ROOM = "Room"
    APARTMENT = "Apartment"
    HOUSE = "House"
    VILLA = "Villa"
    CONDO = "Condo"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SOLD = "sold"
    RENTED = "rented"
    INACTIVE = "inactive"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PROPERTY_DELETED = "property_deleted"


class BookingAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    EXPIRE = "expire"
    INVALIDATE = "invalidate"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


def sql_in(enum_cls) -> str:
    """Render an enum's values for a CHECK constraint."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
