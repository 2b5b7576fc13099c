"""
Listing/Booking data access used by the lifecycle services.

CONCURRENCY STRATEGY: Compare-and-swap on status + version
==========================================================

Problem:
  Owner double-clicks "confirm", or confirms while the sweeper expires the
  same booking. Both requests read status=pending, both write.

Solution:
  UPDATE bookings SET status = :to, version = version + 1
  WHERE id = :id AND status = :from AND version = :seen_version [AND extra]

  rows_affected == 0 means someone else moved the row first -> ConflictError.
  No retries: the loser gets a 409 and the user resubmits against fresh state.

  Listing status writes use the same pattern with the allowed prior states
  in the WHERE clause instead of a version match.
"""

from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.core.exceptions import ConflictError, DuplicateBooking, NotFound
from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import record_conflict
from estate_booking.db.base import utcnow
from estate_booking.models.booking import Booking
from estate_booking.models.enums import BookingStatus
from estate_booking.models.listing import Listing

logger = get_logger(__name__)

ACTIVE_BOOKING_STATES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
ACTIVE_BOOKING_INDEX = "uq_bookings_active_user_listing"


async def find_listing(db: AsyncSession, listing_id: str, include_deleted: bool = False) -> Listing:
    query = select(Listing).where(Listing.id == listing_id)
    if not include_deleted:
        query = query.where(Listing.deleted_at.is_(None))
    listing = (await db.execute(query)).scalar_one_or_none()
    if listing is None:
        raise NotFound(f"Listing {listing_id} not found")
    return listing


async def find_booking(db: AsyncSession, booking_id: str) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


async def find_active_bookings_for_user(
    db: AsyncSession, user_id: str, listing_id: str
) -> list[Booking]:
    """Bookings stored as pending/confirmed; overdue pending rows are included."""
    result = await db.execute(
        select(Booking).where(
            Booking.user_id == user_id,
            Booking.listing_id == listing_id,
            Booking.status.in_(ACTIVE_BOOKING_STATES),
        )
    )
    return list(result.scalars().all())


def _is_active_booking_clash(error: IntegrityError) -> bool:
    # Postgres names the index; SQLite only lists its columns
    message = str(error.orig)
    return ACTIVE_BOOKING_INDEX in message or "bookings.user_id, bookings.listing_id" in message


async def insert_booking(db: AsyncSession, booking: Booking) -> Booking:
    db.add(booking)
    try:
        await db.flush()
    except IntegrityError as e:
        if not _is_active_booking_clash(e):
            raise
        # Partial unique index caught a concurrent create for the same user/listing
        logger.warning(
            "booking_insert_conflict",
            user_id=booking.user_id,
            listing_id=booking.listing_id,
        )
        raise DuplicateBooking("You already have an active booking for this property") from e
    await db.refresh(booking)
    return booking


async def update_booking_status(
    db: AsyncSession,
    booking: Booking,
    from_status: BookingStatus,
    to_status: BookingStatus,
    conditions: Iterable = (),
    **values,
) -> Booking:
    """
    Move `booking` from `from_status` to `to_status` if nobody else has
    touched it since it was read. Extra column values ride along.
    """
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == BookingStatus(from_status).value,
            Booking.version == booking.version,
            *conditions,
        )
        .values(
            status=BookingStatus(to_status).value,
            version=Booking.version + 1,
            updated_at=utcnow(),
            **values,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        record_conflict("booking")
        logger.info(
            "booking_conflict",
            booking_id=booking.id,
            expected_status=BookingStatus(from_status).value,
            expected_version=booking.version,
        )
        raise ConflictError("Booking was modified by another request. Please reload and try again.")

    await db.refresh(booking)
    return booking


async def update_booking_fields(db: AsyncSession, booking: Booking, **values) -> Booking:
    """Version-checked update that keeps the status (e.g. reschedule, payment)."""
    return await update_booking_status(
        db, booking, BookingStatus(booking.status), BookingStatus(booking.status), **values
    )


async def update_listing_status(
    db: AsyncSession,
    listing_id: str,
    status: str,
    allowed_from: Optional[Iterable[str]] = None,
    respect_lock: bool = True,
    **values,
) -> bool:
    """
    Set listing status. Returns False when the listing is locked, deleted or
    not in one of `allowed_from`, leaving it untouched.
    """
    conditions = [Listing.id == listing_id, Listing.deleted_at.is_(None)]
    if respect_lock:
        conditions.append(Listing.admin_locked.is_(False))
    if allowed_from is not None:
        conditions.append(Listing.status.in_(list(allowed_from)))

    result = await db.execute(
        update(Listing)
        .where(*conditions)
        .values(
            status=status,
            version=Listing.version + 1,
            updated_at=utcnow(),
            **values,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
