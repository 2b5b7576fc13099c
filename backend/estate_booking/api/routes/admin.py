"""
Admin moderation endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from estate_booking.api.deps import get_listing_cache
from estate_booking.core.security import Principal, require_admin
from estate_booking.db.session import get_db
from estate_booking.schemas.listing import ListingAdminResponse, ListingLockRequest
from estate_booking.services import listing_service
from estate_booking.services.cache_service import ListingCache

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.patch("/listings/{listing_id}/lock", response_model=ListingAdminResponse)
async def set_listing_lock(
    listing_id: str,
    lock: ListingLockRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Lock pins a listing as inactive and takes it off the browse pages;
    bookings can no longer be confirmed against it. Unlock restores the
    status implied by its bookings.
    """
    listing = await listing_service.set_admin_lock(
        db, listing_id, lock.locked, lock.reason, admin_id=admin.user_id
    )
    await cache.invalidate_browse()
    return listing
