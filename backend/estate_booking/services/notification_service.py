"""
Notification relay for booking events.

The chat/notification service subscribes to per-user Redis channels
("notifications:{user_id}") and fans events out to connected clients. This
API only publishes; delivery, ordering and unread counts belong to the
subscriber.

Publishing never fails a request: the booking write has already committed
its intent, and a lost notification is recoverable from the booking list.
"""

import json
from datetime import datetime, timezone
from typing import Optional, Protocol

import redis.asyncio as redis

from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import record_notification

logger = get_logger(__name__)


class Notifier(Protocol):
    async def publish(self, user_id: str, event: str, payload: dict) -> None: ...

    async def close(self) -> None: ...


class NullNotifier:
    """Used when Redis is disabled: events are only logged."""

    async def publish(self, user_id: str, event: str, payload: dict) -> None:
        logger.debug("notification_skipped", user_id=user_id, notification=event)

    async def close(self) -> None:
        return None


class RedisNotifier:
    def __init__(self, client: redis.Redis, channel_prefix: str = "notifications"):
        self.client = client
        self.channel_prefix = channel_prefix

    def channel_for(self, user_id: str) -> str:
        return f"{self.channel_prefix}:{user_id}"

    async def publish(self, user_id: str, event: str, payload: dict) -> None:
        message = json.dumps(
            {
                "event": event,
                "user_id": user_id,
                "sent_at": datetime.now(timezone.utc).isoformat(),
                "data": payload,
            },
            default=str,
        )
        try:
            receivers = await self.client.publish(self.channel_for(user_id), message)
        except Exception as e:
            record_notification(event, sent=False)
            logger.error("notification_publish_failed", user_id=user_id, notification=event, error=str(e))
            return
        record_notification(event, sent=True)
        logger.debug("notification_published", user_id=user_id, notification=event, receivers=receivers)

    async def close(self) -> None:
        # The Redis client is owned and closed by the application lifespan
        return None


def build_notifier(client: Optional[redis.Redis], channel_prefix: str) -> Notifier:
    if client is None:
        return NullNotifier()
    return RedisNotifier(client, channel_prefix)


def booking_payload(booking) -> dict:
    return {
        "booking_id": booking.id,
        "listing_id": booking.listing_id,
        "status": booking.status,
        "booking_type": booking.booking_type,
        "total_price": booking.total_price,
    }
