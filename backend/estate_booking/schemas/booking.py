"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from estate_booking.models.enums import BookingStatus, PaymentStatus, RentOrSale


class BookingCreate(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=36)
    booking_type: RentOrSale
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def rent_needs_dates(self) -> "BookingCreate":
        if self.booking_type == RentOrSale.RENT and (self.start_date is None or self.end_date is None):
            raise ValueError("start_date and end_date are required for Rent")
        return self


class BookingReschedule(BaseModel):
    start_date: datetime
    end_date: datetime


class BookingResponse(BaseModel):
    id: str
    user_id: str
    listing_id: str
    booking_type: RentOrSale
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    duration_days: Optional[int]
    total_price: Decimal
    status: BookingStatus
    expires_at: Optional[datetime]
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCheckResponse(BaseModel):
    exists: bool
