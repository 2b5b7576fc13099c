"""
Periodic sweep that persists pending -> expired.

Reads already reconcile expiry lazily; the sweeper covers bookings nobody
looks at, so owner dashboards and the duplicate-booking index see the real
state. Runs as an asyncio task owned by the application lifespan.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_booking.core.logging import get_logger
from estate_booking.core.metrics import booking_latency
from estate_booking.services.booking_service import sweep_expired_bookings
from estate_booking.services.notification_service import Notifier

logger = get_logger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        interval_seconds: float,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        with booking_latency.labels(operation="expiry_sweep").time():
            async with self.session_factory() as session:
                try:
                    expired = await sweep_expired_bookings(session)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        for booking_id, user_id in expired:
            await self.notifier.publish(user_id, "booking_expired", {"booking_id": booking_id})

        if expired:
            logger.info("expiry_sweep_completed", expired=len(expired))
        return len(expired)

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # A failed sweep is retried next tick; reads still reconcile
                logger.error("expiry_sweep_failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name="booking-expiry-sweeper")
            logger.info("expiry_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("expiry_sweeper_stopped")
