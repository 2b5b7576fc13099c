"""
Pydantic schemas for listing-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from estate_booking.models.enums import ListingStatus, ListingType, RentOrSale


class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    location: Optional[str] = Field(None, max_length=255)
    listing_type: ListingType = ListingType.APARTMENT
    rent_or_sale: RentOrSale
    price: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class ListingResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str]
    location: Optional[str]
    listing_type: ListingType
    rent_or_sale: RentOrSale
    price: Decimal
    status: ListingStatus
    admin_locked: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ListingBrowseResponse(BaseModel):
    listings: list[ListingResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class ListingLockRequest(BaseModel):
    locked: bool
    reason: Optional[str] = Field(None, max_length=500)


class ListingAdminResponse(ListingResponse):
    lock_reason: Optional[str]


class ListingDeleteResponse(BaseModel):
    message: str
    listing_id: str
    bookings_invalidated: int
