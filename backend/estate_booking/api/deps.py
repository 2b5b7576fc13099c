"""
Request-scoped access to lifespan-owned resources.

The lifespan stores the listing cache, notifier and booking rate limiter on
``app.state``; when it has not run (ASGI test transports) handlers get
disabled stand-ins.
"""

from fastapi import Depends, HTTPException, Request, status

from estate_booking.core.config import get_settings
from estate_booking.core.security import get_current_user_id
from estate_booking.services.cache_service import ListingCache
from estate_booking.services.notification_service import Notifier, NullNotifier
from estate_booking.services.rate_limit import RateLimiter

BOOKING_CREATE_SCOPE = "booking_create"


def build_booking_rate_limiter(client, settings) -> RateLimiter:
    return RateLimiter(
        client,
        BOOKING_CREATE_SCOPE,
        settings.BOOKING_CREATE_RATE_LIMIT,
        settings.BOOKING_CREATE_RATE_WINDOW_SECONDS,
    )


def get_listing_cache(request: Request) -> ListingCache:
    cache = getattr(request.app.state, "listing_cache", None)
    if cache is None:
        return ListingCache(None, get_settings().REDIS_CACHE_TTL)
    return cache


def get_notifier(request: Request) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    return notifier if notifier is not None else NullNotifier()


def get_booking_rate_limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "booking_rate_limiter", None)
    if limiter is None:
        return build_booking_rate_limiter(None, get_settings())
    return limiter


async def limit_booking_creation(
    user_id: str = Depends(get_current_user_id),
    limiter: RateLimiter = Depends(get_booking_rate_limiter),
) -> None:
    retry_after = await limiter.hit(user_id)
    if retry_after is not None:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking requests, try again later",
            headers={"Retry-After": str(retry_after)},
        )
