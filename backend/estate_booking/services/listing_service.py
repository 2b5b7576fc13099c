"""
Listing service: owner CRUD, public browse, removal and admin moderation.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.core.exceptions import OwnershipConflict
from estate_booking.core.logging import get_logger
from estate_booking.db.base import utcnow
from estate_booking.models.booking import Booking
from estate_booking.models.enums import BookingStatus, ListingStatus, RentOrSale
from estate_booking.models.listing import Listing
from estate_booking.schemas.listing import ListingCreate
from estate_booking.services import booking_store as store
from estate_booking.services.booking_service import invalidate_listing_bookings

logger = get_logger(__name__)

BROWSABLE_STATES = (ListingStatus.ACTIVE.value, ListingStatus.PENDING.value)


async def create_listing(db: AsyncSession, data: ListingCreate, owner_id: str) -> Listing:
    listing = Listing(
        owner_id=owner_id,
        title=data.title,
        description=data.description,
        location=data.location,
        listing_type=data.listing_type.value,
        rent_or_sale=data.rent_or_sale.value,
        price=data.price,
        status=ListingStatus.ACTIVE.value,
    )
    db.add(listing)
    await db.flush()
    await db.refresh(listing)

    logger.info("listing_created", listing_id=listing.id, owner_id=owner_id, rent_or_sale=listing.rent_or_sale)
    return listing


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    return await store.find_listing(db, listing_id)


async def browse_listings(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 9,
    rent_or_sale: Optional[RentOrSale] = None,
    listing_type: Optional[str] = None,
) -> tuple[list[Listing], int]:
    """Live, unlocked listings that can still be booked. Uses ix_listings_browse."""
    query = select(Listing).where(
        Listing.deleted_at.is_(None),
        Listing.admin_locked.is_(False),
        Listing.status.in_(BROWSABLE_STATES),
    )
    if rent_or_sale is not None:
        query = query.where(Listing.rent_or_sale == RentOrSale(rent_or_sale).value)
    if listing_type is not None:
        query = query.where(Listing.listing_type == listing_type)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query.order_by(Listing.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_owner_listings(db: AsyncSession, owner_id: str) -> list[Listing]:
    result = await db.execute(
        select(Listing)
        .where(Listing.owner_id == owner_id, Listing.deleted_at.is_(None))
        .order_by(Listing.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_listing(
    db: AsyncSession, listing_id: str, actor_id: str, now: Optional[datetime] = None
) -> list[tuple[str, str]]:
    """
    Remove a listing. Live bookings become property_deleted. A listing that
    any booking references is soft-deleted; otherwise the row is dropped.
    Returns the (booking_id, user_id) pairs that were invalidated.
    """
    now = now or utcnow()
    listing = await store.find_listing(db, listing_id)
    if listing.owner_id != actor_id:
        raise OwnershipConflict("You can only delete your own listings")

    invalidated = await invalidate_listing_bookings(db, listing_id, now)

    referenced = (
        await db.execute(select(func.count()).select_from(Booking).where(Booking.listing_id == listing_id))
    ).scalar()
    if referenced:
        listing.deleted_at = now
        listing.status = ListingStatus.INACTIVE.value
        listing.version = listing.version + 1
        await db.flush()
    else:
        await db.delete(listing)
        await db.flush()

    logger.info(
        "listing_deleted",
        listing_id=listing_id,
        soft=bool(referenced),
        bookings_invalidated=len(invalidated),
    )
    return invalidated


async def set_admin_lock(
    db: AsyncSession,
    listing_id: str,
    locked: bool,
    reason: Optional[str] = None,
    admin_id: Optional[str] = None,
) -> Listing:
    """
    Lock: pin the listing as inactive; booking transitions stop touching it.
    Unlock: status is derived again, rented/sold if a confirmed booking holds
    the listing, otherwise active.
    """
    listing = await store.find_listing(db, listing_id)

    if locked:
        status = ListingStatus.INACTIVE.value
    else:
        holder = (
            await db.execute(
                select(Booking.booking_type)
                .where(
                    Booking.listing_id == listing_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .limit(1)
            )
        ).scalar_one_or_none()
        if holder is None:
            status = ListingStatus.ACTIVE.value
        elif holder == RentOrSale.RENT.value:
            status = ListingStatus.RENTED.value
        else:
            status = ListingStatus.SOLD.value

    await store.update_listing_status(
        db,
        listing_id,
        status,
        respect_lock=False,
        admin_locked=locked,
        lock_reason=reason if locked else None,
    )
    await db.refresh(listing)

    logger.info(
        "listing_lock_changed",
        listing_id=listing_id,
        locked=locked,
        status=listing.status,
        admin_id=admin_id,
    )
    return listing
