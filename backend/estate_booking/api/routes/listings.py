"""
Listing endpoints with Redis caching on the public browse.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.api.deps import get_listing_cache, get_notifier
from estate_booking.core.logging import get_logger
from estate_booking.core.security import get_current_user_id
from estate_booking.db.session import get_db
from estate_booking.models.enums import ListingType, RentOrSale
from estate_booking.schemas.listing import (
    ListingBrowseResponse,
    ListingCreate,
    ListingDeleteResponse,
    ListingResponse,
)
from estate_booking.services import listing_service
from estate_booking.services.cache_service import ListingCache
from estate_booking.services.notification_service import Notifier

logger = get_logger(__name__)
router = APIRouter(prefix="/listings", tags=["Listings"])


@router.post("/", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    listing_data: ListingCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
):
    listing = await listing_service.create_listing(db, listing_data, user_id)
    await cache.invalidate_browse()
    return listing


@router.get("/", response_model=ListingBrowseResponse)
async def browse_listings(
    page: int = Query(1, ge=1),
    page_size: int = Query(9, ge=1, le=100),
    rent_or_sale: Optional[RentOrSale] = Query(None),
    listing_type: Optional[ListingType] = Query(None),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Bookable listings, newest first. Cached per filter/page; any listing
    status change clears the cache.
    """
    kind = rent_or_sale.value if rent_or_sale else None
    ltype = listing_type.value if listing_type else None
    key = cache.browse_key(kind, ltype, page, page_size)

    cached = await cache.get(key)
    if cached:
        logger.info("listings_browse_cache_hit", page=page)
        cached["cached"] = True
        return ListingBrowseResponse(**cached)

    listings, total = await listing_service.browse_listings(db, page, page_size, rent_or_sale, ltype)
    response_data = {
        "listings": [ListingResponse.model_validate(item).model_dump(mode="json") for item in listings],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await cache.set(key, response_data)
    return ListingBrowseResponse(**response_data)


@router.get("/mine", response_model=list[ListingResponse])
async def list_my_listings(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await listing_service.list_owner_listings(db, user_id)


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(listing_id: str, db: AsyncSession = Depends(get_db)):
    """Single listing. Not cached: booking pages need the live status."""
    return await listing_service.get_listing(db, listing_id)


@router.delete("/{listing_id}", response_model=ListingDeleteResponse)
async def delete_listing(
    listing_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
    notifier: Notifier = Depends(get_notifier),
):
    """Remove a listing; its live bookings are marked property_deleted."""
    invalidated = await listing_service.delete_listing(db, listing_id, user_id)
    await cache.invalidate_browse()
    for booking_id, guest_id in invalidated:
        await notifier.publish(guest_id, "property_deleted", {"booking_id": booking_id, "listing_id": listing_id})
    return ListingDeleteResponse(
        message="Listing has been deleted",
        listing_id=listing_id,
        bookings_invalidated=len(invalidated),
    )
