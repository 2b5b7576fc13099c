"""
Payment gateway callback endpoint.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.api.deps import get_notifier
from estate_booking.core.config import get_settings
from estate_booking.db.session import get_db
from estate_booking.schemas.booking import BookingResponse
from estate_booking.schemas.payment import PaymentCallback
from estate_booking.services.notification_service import Notifier, booking_payload
from estate_booking.services.payment_service import record_payment_outcome

router = APIRouter(prefix="/payments", tags=["Payments"])


def verify_internal_secret(x_internal_secret: Optional[str] = Header(default=None)) -> None:
    expected = get_settings().PAYMENTS_CALLBACK_SECRET
    if not x_internal_secret or not hmac.compare_digest(x_internal_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback secret")


@router.post("/callback", response_model=BookingResponse, dependencies=[Depends(verify_internal_secret)])
async def payment_callback(
    callback: PaymentCallback,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Gateway adapter reports a verified payment outcome for a confirmed booking."""
    booking = await record_payment_outcome(
        db, callback.booking_id, callback.outcome, callback.reference, callback.method
    )
    await notifier.publish(booking.user_id, f"payment_{callback.outcome}", booking_payload(booking))
    return booking
