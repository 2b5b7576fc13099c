"""
Payment gateway callback handling.

The gateway adapter (Khalti/eSewa) lives outside this service; once it has
verified a payment it posts the outcome here. Only a confirmed booking can
take a payment outcome, and a paid booking is final.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.core.exceptions import ConflictError, InvalidTransition
from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import payment_callbacks
from estate_booking.db.base import utcnow
from estate_booking.models.booking import Booking
from estate_booking.models.enums import BookingStatus, PaymentStatus
from estate_booking.services import booking_store as store

logger = get_logger(__name__)


async def record_payment_outcome(
    db: AsyncSession,
    booking_id: str,
    outcome: PaymentStatus,
    reference: Optional[str] = None,
    method: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    outcome = PaymentStatus(outcome)
    if outcome == PaymentStatus.PENDING:
        raise InvalidTransition("Payment outcome must be paid or failed")

    booking = await store.find_booking(db, booking_id)
    if booking.status != BookingStatus.CONFIRMED.value:
        payment_callbacks.labels(outcome=outcome.value, result="rejected").inc()
        raise InvalidTransition(f"Only confirmed bookings can be paid for (booking is {booking.status})")
    if booking.payment_status == PaymentStatus.PAID.value:
        payment_callbacks.labels(outcome=outcome.value, result="rejected").inc()
        raise InvalidTransition("This booking has already been paid")

    values = {
        "payment_status": outcome.value,
        "payment_reference": reference,
        "payment_method": method,
    }
    if outcome == PaymentStatus.PAID:
        values["paid_at"] = now or utcnow()

    try:
        await store.update_booking_fields(db, booking, **values)
    except ConflictError:
        payment_callbacks.labels(outcome=outcome.value, result="conflict").inc()
        raise

    payment_callbacks.labels(outcome=outcome.value, result="ok").inc()
    logger.info(
        "payment_recorded",
        booking_id=booking.id,
        outcome=outcome.value,
        method=method,
        reference=reference,
    )
    return booking
