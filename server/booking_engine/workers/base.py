"""Periodic background worker loop."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    A task that calls ``process()`` every ``interval_seconds``.

    Workers only tidy storage; no request ever waits on one. A failing
    iteration is logged and counted, and the loop carries on at the next tick.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def process(self) -> int:
        """Run one iteration and return the number of rows changed."""

    async def run_once(self) -> int:
        """One timed, metered iteration. Errors propagate to the caller."""
        started = time.monotonic()
        try:
            affected = await self.process()
        except Exception:
            metrics_collector.record_worker_run(self.name, "error")
            raise

        metrics_collector.record_worker_run(self.name, "ok", affected)
        logger.debug(
            "Worker iteration finished",
            extra={
                "worker": self.name,
                "affected": affected,
                "duration_seconds": round(time.monotonic() - started, 3),
            }
        )
        return affected

    async def start(self) -> None:
        if self.running:
            logger.warning("Worker already running", extra={"worker": self.name})
            return

        self._task = asyncio.create_task(self._loop(), name=f"worker:{self.name}")
        logger.info(
            "Worker started",
            extra={"worker": self.name, "interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Worker stopped", extra={"worker": self.name})

    async def _loop(self) -> None:
        while True:
            started = time.monotonic()
            try:
                await self.run_once()
            except Exception:
                logger.exception("Worker iteration failed", extra={"worker": self.name})

            await asyncio.sleep(max(0.0, self.interval_seconds - (time.monotonic() - started)))
