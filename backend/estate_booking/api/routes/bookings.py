"""
Booking endpoints: request, confirm, cancel, reschedule and queries.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.api.deps import get_listing_cache, get_notifier, limit_booking_creation
from estate_booking.core.security import get_current_user_id
from estate_booking.db.session import get_db
from estate_booking.models.enums import BookingStatus
from estate_booking.schemas.booking import (
    BookingCheckResponse,
    BookingCreate,
    BookingReschedule,
    BookingResponse,
)
from estate_booking.services import booking_service
from estate_booking.services.booking_store import find_listing
from estate_booking.services.cache_service import ListingCache
from estate_booking.services.notification_service import Notifier, booking_payload

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_booking_creation)],
)
async def create_booking(
    booking_data: BookingCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Request a listing. The booking starts pending and expires if the owner
    does not act within the configured window. Price is computed server-side.
    Each user may file a limited number of requests per window (429 beyond).
    """
    booking = await booking_service.create_booking(
        db,
        user_id,
        booking_data.listing_id,
        booking_data.booking_type,
        booking_data.start_date,
        booking_data.end_date,
    )
    listing = await find_listing(db, booking.listing_id)
    await notifier.publish(listing.owner_id, "booking_created", booking_payload(booking))
    return booking


@router.get("/", response_model=list[BookingResponse])
async def list_my_bookings(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Bookings made by the authenticated user, with expiry applied."""
    return await booking_service.list_user_bookings(db, user_id)


@router.get("/check", response_model=BookingCheckResponse)
async def check_booking(
    listing_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    exists = await booking_service.has_active_booking(db, user_id, listing_id)
    return BookingCheckResponse(exists=exists)


@router.get("/requests", response_model=list[BookingResponse])
async def list_incoming_requests(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests awaiting the authenticated owner's decision."""
    return await booking_service.list_bookings_for_owner(db, user_id, BookingStatus.PENDING)


@router.get("/for-my-listings", response_model=list[BookingResponse])
async def list_bookings_for_my_listings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_bookings_for_owner(db, user_id, booking_status)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking_for(db, booking_id, user_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Owner accepts a pending booking. The listing becomes rented or sold in
    the same transaction. A concurrent decision on the same booking gets 409.
    """
    booking = await booking_service.confirm_booking(db, booking_id, user_id)
    await cache.invalidate_browse()
    await notifier.publish(booking.user_id, "booking_confirmed", booking_payload(booking))
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Guest withdraws a pending request, or the owner rejects/cancels it.
    Cancelling a confirmed booking makes the listing active again.
    Cancelling twice is an error, not a no-op.
    """
    booking = await booking_service.cancel_booking(db, booking_id, user_id)
    await cache.invalidate_browse()

    listing = await find_listing(db, booking.listing_id, include_deleted=True)
    other_party = listing.owner_id if user_id == booking.user_id else booking.user_id
    await notifier.publish(other_party, "booking_cancelled", booking_payload(booking))
    return booking


@router.patch("/{booking_id}", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: str,
    dates: BookingReschedule,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Change the dates of a pending rent booking; price is recomputed."""
    return await booking_service.reschedule_booking(
        db, booking_id, user_id, dates.start_date, dates.end_date
    )
