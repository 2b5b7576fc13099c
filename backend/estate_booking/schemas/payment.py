"""
Pydantic schemas for the payment gateway callback.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class PaymentCallback(BaseModel):
    booking_id: str = Field(..., min_length=1, max_length=36)
    outcome: Literal["paid", "failed"]
    reference: Optional[str] = Field(None, max_length=128)
    method: Optional[str] = Field(None, max_length=32)
