"""
Fixed-window request limiter backed by Redis.

One counter per (scope, caller) and window: INCR on every hit, EXPIRE on
the first one so the key disappears when the window closes. Used to cap how
many booking requests a single user can file.

Without Redis, or when Redis errors, requests are let through: the limiter
protects owners from spam, it is not a correctness guard.
"""

from typing import Optional

import redis.asyncio as redis

from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import record_rate_limit

logger = get_logger(__name__)

KEY_PREFIX = "ratelimit:"


class RateLimiter:
    def __init__(self, client: Optional[redis.Redis], scope: str, limit: int, window_seconds: int):
        self.client = client
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.limit > 0

    def key_for(self, caller: str) -> str:
        return f"{KEY_PREFIX}{self.scope}:{caller}"

    async def hit(self, caller: str) -> Optional[int]:
        """
        Count one request for `caller`. Returns None when allowed, otherwise
        the seconds until the window resets.
        """
        if not self.enabled:
            return None

        key = self.key_for(caller)
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, self.window_seconds)
            if count <= self.limit:
                record_rate_limit(self.scope, allowed=True)
                return None
            ttl = await self.client.ttl(key)
        except Exception as e:
            logger.error("rate_limit_error", scope=self.scope, caller=caller, error=str(e))
            return None

        retry_after = ttl if ttl and ttl > 0 else self.window_seconds
        record_rate_limit(self.scope, allowed=False)
        logger.warning("rate_limited", scope=self.scope, caller=caller, count=count, retry_after=retry_after)
        return retry_after
