"""Background worker relabelling lapsed holds as EXPIRED."""

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import async_session_factory
from ..services.hold_service import HoldService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldSweepWorker(BaseWorker):
    """
    Marks ACTIVE holds past their expiry as EXPIRED and refreshes the
    active-holds gauge.

    Capacity is never restored here: lapsed holds already stop counting the
    moment they expire.
    """

    def __init__(self, interval_seconds: int = 300, session_factory: Callable[[], AsyncSession] = async_session_factory):
        super().__init__(name="HoldSweep", interval_seconds=interval_seconds)
        self.session_factory = session_factory

    async def process(self) -> int:
        async with self.session_factory() as db:
            expired_count = await HoldService(db).sweep_expired_holds()

        if expired_count > 0:
            logger.info(
                f"Expired {expired_count} holds",
                extra={"expired_count": expired_count, "worker": self.name}
            )
        return expired_count
