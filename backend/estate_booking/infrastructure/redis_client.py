"""
Redis connection lifecycle.

The client is created once in the application lifespan and stored on
``app.state``; the listing cache and the notification relay receive it
explicitly instead of reaching for a module-level singleton.
"""

from typing import Optional

import redis.asyncio as redis

from estate_booking.core.config import Settings
from estate_booking.core.logging import get_logger

logger = get_logger(__name__)


async def connect_redis(settings: Settings) -> Optional[redis.Redis]:
    """Open and ping a Redis client. Returns None if disabled or unreachable."""
    if not settings.REDIS_ENABLED:
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.error("redis_connection_failed", url=settings.REDIS_URL, error=str(e))
        await client.aclose()
        return None

    logger.info("redis_connected", url=settings.REDIS_URL)
    return client


async def close_redis(client: Optional[redis.Redis]) -> None:
    if client is not None:
        await client.aclose()
