"""
Redis caching for public listing pages.

CACHING STRATEGY
================

What we cache:
  - Public browse responses (paginated, JSON-serialized)
  - Key pattern: "listings:browse:kind={kind}&type={type}&page={page}&size={size}"

Invalidation strategy:
  - Any listing status change (booking confirmed/cancelled, admin lock,
    create, delete) drops every browse key: availability is what browsers
    filter on, so stale pages would advertise rented or sold homes.
  - TTL-based expiry as safety net.

  All keys share the "listings:browse:" prefix so we can SCAN and delete them.

Why NOT cache single listings or bookings:
  - Booking decisions need the current status; a stale read turns into a
    CAS conflict at best and a misleading page at worst.

Redis errors are logged and treated as a miss; the database stays
authoritative.
"""

import json
from typing import Optional

import redis.asyncio as redis

from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)

BROWSE_PREFIX = "listings:browse:"


class ListingCache:
    def __init__(self, client: Optional[redis.Redis], ttl: int):
        self.client = client
        self.ttl = ttl

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def browse_key(rent_or_sale: Optional[str], listing_type: Optional[str], page: int, page_size: int) -> str:
        return (
            f"{BROWSE_PREFIX}kind={rent_or_sale or 'all'}&type={listing_type or 'all'}"
            f"&page={page}&size={page_size}"
        )

    async def get(self, key: str) -> Optional[dict]:
        if not self.enabled:
            return None
        try:
            data = await self.client.get(key)
        except Exception as e:
            logger.error("cache_get_error", key=key, error=str(e))
            return None

        record_cache_operation("get", hit=data is not None)
        if data is None:
            logger.debug("cache_miss", key=key)
            return None
        logger.debug("cache_hit", key=key)
        return json.loads(data)

    async def set(self, key: str, data: dict) -> None:
        if not self.enabled:
            return
        try:
            await self.client.setex(key, self.ttl, json.dumps(data, default=str))
            logger.debug("cache_set", key=key, ttl=self.ttl)
        except Exception as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def invalidate_browse(self) -> int:
        if not self.enabled:
            return 0
        deleted = 0
        try:
            async for key in self.client.scan_iter(match=f"{BROWSE_PREFIX}*", count=100):
                await self.client.delete(key)
                deleted += 1
            logger.info("cache_invalidated", keys_deleted=deleted)
        except Exception as e:
            logger.error("cache_invalidation_error", error=str(e))
        return deleted

    async def stats(self) -> dict:
        if not self.enabled:
            return {"status": "disabled"}
        try:
            info = await self.client.info("stats")
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            return {
                "status": "connected",
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}
