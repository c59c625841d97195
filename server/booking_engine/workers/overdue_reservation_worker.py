"""Background worker cancelling reservations that were never paid."""

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import async_session_factory
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class OverdueReservationWorker(BaseWorker):
    """Cancels PENDING bookings whose payment due date has passed, freeing their spots."""

    def __init__(self, interval_seconds: int = 900, session_factory: Callable[[], AsyncSession] = async_session_factory):
        super().__init__(name="OverdueReservation", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> int:
        async with self.session_factory() as db:
            cancelled = await BookingService(db).cancel_overdue_reservations()

        if cancelled > 0:
            logger.info(
                f"Cancelled {cancelled} overdue reservations",
                extra={"cancelled_count": cancelled, "worker": self.name}
            )
        return cancelled
