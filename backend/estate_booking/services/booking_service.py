"""
Booking service: runs the lifecycle engine against the stores.

Each public function is one unit of work inside the caller's session. The
session dependency commits on success and rolls back on any exception, so a
booking CAS that succeeded followed by a listing CAS that failed leaves no
trace. Functions here flush but never commit.

Expiry is reconciled on every read path: an overdue pending booking is
moved to `expired` with a CAS that also requires `expires_at < now`, so it
cannot overwrite a confirm that won the race. The periodic sweeper does the
same in bulk for rows nobody reads.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.core.exceptions import (
    BookingError,
    ConflictError,
    DuplicateBooking,
    InvalidTransition,
    ListingUnavailable,
    OwnershipConflict,
    TransitionNotPermitted,
)
from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import record_booking_attempt, record_conflict, record_expired, record_transition
from estate_booking.db.base import utcnow
from estate_booking.models.booking import Booking
from estate_booking.models.enums import (
    BookingAction,
    BookingStatus,
    ListingStatus,
    PaymentStatus,
    RentOrSale,
)
from estate_booking.models.listing import Listing
from estate_booking.services import booking_store as store
from estate_booking.services.booking_lifecycle import (
    BOOKABLE_LISTING_STATES,
    BookingRules,
    as_utc,
    compute_total_price,
    is_overdue,
    plan_transition,
    sources_for,
    target_of,
    validate_rent_window,
)

logger = get_logger(__name__)


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else utcnow()


async def create_booking(
    db: AsyncSession,
    user_id: str,
    listing_id: str,
    booking_type: RentOrSale,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
    rules: Optional[BookingRules] = None,
) -> Booking:
    """
    Create a pending booking. Price and duration are computed here from the
    listing; the listing status is left alone until the owner confirms.
    """
    now = _now(now)
    rules = rules or BookingRules.from_settings()

    try:
        listing = await store.find_listing(db, listing_id)

        if listing.owner_id == user_id:
            raise OwnershipConflict("You cannot book your own listing")

        booking_type = RentOrSale(booking_type)
        if booking_type.value != listing.rent_or_sale:
            raise BookingError(f"This listing is for {listing.rent_or_sale}, not {booking_type.value}")

        if listing.admin_locked or listing.status not in BOOKABLE_LISTING_STATES:
            raise ListingUnavailable(f"Listing is not available for booking ({listing.status})")

        for existing in await store.find_active_bookings_for_user(db, user_id, listing_id):
            if await expire_if_overdue(db, existing, now):
                continue
            raise DuplicateBooking("You already have an active booking for this property")

        if booking_type == RentOrSale.RENT:
            duration_days = validate_rent_window(start_date, end_date, now, rules)
            start_date, end_date = as_utc(start_date), as_utc(end_date)
        else:
            duration_days, start_date, end_date = None, None, None

        booking = Booking(
            user_id=user_id,
            listing_id=listing.id,
            booking_type=booking_type.value,
            start_date=start_date,
            end_date=end_date,
            duration_days=duration_days,
            total_price=compute_total_price(booking_type, listing.price, duration_days, rules),
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            expires_at=now + rules.pending_window,
        )
        booking = await store.insert_booking(db, booking)
    except BookingError as e:
        record_booking_attempt(e.code)
        logger.info("booking_rejected", listing_id=listing_id, user_id=user_id, reason=e.code)
        raise

    record_booking_attempt("created")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        listing_id=listing_id,
        user_id=user_id,
        booking_type=booking.booking_type,
        duration_days=booking.duration_days,
        total_price=booking.total_price,
    )
    return booking


async def apply_transition(
    db: AsyncSession,
    booking: Booking,
    action: BookingAction,
    actor_id: Optional[str],
    now: Optional[datetime] = None,
) -> Booking:
    """
    Apply `action` to the booking as it was read. If the row changed since,
    the CAS matches nothing and ConflictError is raised.
    """
    action = BookingAction(action)
    now = _now(now)

    try:
        listing = await store.find_listing(db, booking.listing_id, include_deleted=True)

        if action != BookingAction.EXPIRE and is_overdue(booking.status, booking.expires_at, now):
            raise InvalidTransition("Booking request has expired")

        plan = plan_transition(booking, action, listing.owner_id, actor_id)

        conditions = []
        values = {}
        if action == BookingAction.CONFIRM:
            # Loses to an expiry that lands between our read and this write
            conditions.append(Booking.expires_at.is_(None) | (Booking.expires_at > now))
            values["payment_status"] = PaymentStatus.PENDING.value
        elif action == BookingAction.EXPIRE:
            conditions.append(Booking.expires_at < now)

        await store.update_booking_status(db, booking, plan.from_status, plan.to_status, conditions, **values)

        if action == BookingAction.CONFIRM:
            applied = await store.update_listing_status(
                db, listing.id, plan.listing_status.value, allowed_from=BOOKABLE_LISTING_STATES
            )
            if not applied:
                record_conflict("listing")
                raise ListingUnavailable("Listing is locked or already taken")
        elif plan.reverts_listing:
            reverted = await store.update_listing_status(
                db,
                listing.id,
                ListingStatus.ACTIVE.value,
                allowed_from=(ListingStatus.RENTED.value, ListingStatus.SOLD.value),
            )
            if not reverted:
                logger.info("listing_revert_skipped", listing_id=listing.id, reason="locked_or_deleted")
    except ConflictError:
        record_transition(action.value, "conflict")
        raise
    except BookingError as e:
        record_transition(action.value, "rejected")
        logger.info("booking_transition_rejected", booking_id=booking.id, action=action.value, reason=e.code)
        raise

    record_transition(action.value, "ok")
    if action == BookingAction.EXPIRE:
        record_expired("transition")
    logger.info(
        "booking_transitioned",
        booking_id=booking.id,
        action=action.value,
        from_status=plan.from_status.value,
        to_status=plan.to_status.value,
        listing_status=plan.listing_status.value if plan.listing_status else None,
        actor_id=actor_id,
    )
    return booking


async def transition_booking(
    db: AsyncSession,
    booking_id: str,
    action: BookingAction,
    actor_id: str,
    now: Optional[datetime] = None,
) -> Booking:
    booking = await store.find_booking(db, booking_id)
    return await apply_transition(db, booking, action, actor_id, now)


async def confirm_booking(db: AsyncSession, booking_id: str, actor_id: str, now: Optional[datetime] = None) -> Booking:
    return await transition_booking(db, booking_id, BookingAction.CONFIRM, actor_id, now)


async def cancel_booking(db: AsyncSession, booking_id: str, actor_id: str, now: Optional[datetime] = None) -> Booking:
    return await transition_booking(db, booking_id, BookingAction.CANCEL, actor_id, now)


async def reschedule_booking(
    db: AsyncSession,
    booking_id: str,
    actor_id: str,
    start_date: datetime,
    end_date: datetime,
    now: Optional[datetime] = None,
    rules: Optional[BookingRules] = None,
) -> Booking:
    """Guest edits the dates of a pending rent booking; price follows."""
    now = _now(now)
    rules = rules or BookingRules.from_settings()

    booking = await store.find_booking(db, booking_id)
    if booking.user_id != actor_id:
        raise TransitionNotPermitted("You can only edit your own bookings")
    if booking.status != BookingStatus.PENDING.value or is_overdue(booking.status, booking.expires_at, now):
        raise InvalidTransition("Only pending bookings can be edited")
    if booking.booking_type != RentOrSale.RENT.value:
        raise InvalidTransition("Only rent bookings have dates to edit")

    listing = await store.find_listing(db, booking.listing_id)
    duration_days = validate_rent_window(start_date, end_date, now, rules)

    try:
        await store.update_booking_fields(
            db,
            booking,
            start_date=as_utc(start_date),
            end_date=as_utc(end_date),
            duration_days=duration_days,
            total_price=compute_total_price(RentOrSale.RENT, listing.price, duration_days, rules),
        )
    except ConflictError:
        record_transition("reschedule", "conflict")
        raise

    record_transition("reschedule", "ok")
    logger.info(
        "booking_rescheduled",
        booking_id=booking.id,
        duration_days=booking.duration_days,
        total_price=booking.total_price,
    )
    return booking


async def expire_if_overdue(db: AsyncSession, booking: Booking, now: Optional[datetime] = None) -> bool:
    """Persist pending -> expired for an overdue booking. True if it is expired now."""
    now = _now(now)
    if not is_overdue(booking.status, booking.expires_at, now):
        return booking.status == BookingStatus.EXPIRED.value

    try:
        await store.update_booking_status(
            db,
            booking,
            BookingStatus.PENDING,
            BookingStatus.EXPIRED,
            [Booking.expires_at < now],
        )
    except ConflictError:
        # Someone else moved it (sweeper or a winning confirm): take their result
        await db.refresh(booking)
        return booking.status == BookingStatus.EXPIRED.value

    record_expired("read")
    logger.info("booking_expired", booking_id=booking.id, source="read")
    return True


async def reconcile_all(db: AsyncSession, bookings: list[Booking], now: Optional[datetime] = None) -> list[Booking]:
    now = _now(now)
    for booking in bookings:
        await expire_if_overdue(db, booking, now)
    return bookings


async def get_booking_for(
    db: AsyncSession, booking_id: str, actor_id: str, now: Optional[datetime] = None
) -> Booking:
    booking = await store.find_booking(db, booking_id)
    listing = await store.find_listing(db, booking.listing_id, include_deleted=True)
    if actor_id not in (booking.user_id, listing.owner_id):
        raise OwnershipConflict("You can only view your own bookings or bookings for your listings")
    await expire_if_overdue(db, booking, now)
    return booking


async def list_user_bookings(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc())
    )
    return await reconcile_all(db, list(result.scalars().all()), now)


async def has_active_booking(
    db: AsyncSession, user_id: str, listing_id: str, now: Optional[datetime] = None
) -> bool:
    bookings = await store.find_active_bookings_for_user(db, user_id, listing_id)
    await reconcile_all(db, bookings, now)
    return any(b.status in store.ACTIVE_BOOKING_STATES for b in bookings)


async def list_bookings_for_owner(
    db: AsyncSession,
    owner_id: str,
    status: Optional[BookingStatus] = None,
    now: Optional[datetime] = None,
) -> list[Booking]:
    """Bookings on listings owned by `owner_id`, newest first."""
    query = (
        select(Booking)
        .join(Listing, Listing.id == Booking.listing_id)
        .where(Listing.owner_id == owner_id)
        .order_by(Booking.created_at.desc())
    )
    bookings = await reconcile_all(db, list((await db.execute(query)).scalars().all()), now)
    if status is not None:
        bookings = [b for b in bookings if b.status == BookingStatus(status).value]
    return bookings


async def sweep_expired_bookings(db: AsyncSession, now: Optional[datetime] = None) -> list[tuple[str, str]]:
    """
    Bulk pending -> expired for every overdue row.
    Returns (booking_id, user_id) pairs for notification.
    """
    now = _now(now)
    result = await db.execute(
        update(Booking)
        .where(
            Booking.status.in_(sources_for(BookingAction.EXPIRE)),
            Booking.expires_at < now,
        )
        .values(
            status=target_of(BookingAction.EXPIRE).value,
            version=Booking.version + 1,
            updated_at=now,
        )
        .returning(Booking.id, Booking.user_id)
        .execution_options(synchronize_session=False)
    )
    expired = [(row.id, row.user_id) for row in result.all()]
    record_expired("sweep", len(expired))
    return expired


async def invalidate_listing_bookings(
    db: AsyncSession, listing_id: str, now: Optional[datetime] = None
) -> list[tuple[str, str]]:
    """Mark live bookings of a removed listing as property_deleted."""
    now = _now(now)
    result = await db.execute(
        update(Booking)
        .where(
            Booking.listing_id == listing_id,
            Booking.status.in_(sources_for(BookingAction.INVALIDATE)),
        )
        .values(
            status=target_of(BookingAction.INVALIDATE).value,
            version=Booking.version + 1,
            updated_at=now,
        )
        .returning(Booking.id, Booking.user_id)
        .execution_options(synchronize_session=False)
    )
    invalidated = [(row.id, row.user_id) for row in result.all()]
    if invalidated:
        record_transition(BookingAction.INVALIDATE.value, "ok")
    return invalidated
