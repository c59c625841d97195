"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import Settings, settings
from .base import BaseWorker
from .hold_sweep_worker import HoldSweepWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .overdue_reservation_worker import OverdueReservationWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting and stopping of the workers enabled in settings.
    """

    def __init__(self, config: Settings = settings):
        self.config = config
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        """Initialize the enabled workers."""
        if self.config.hold_sweep_enabled:
            self.workers["hold_sweep"] = HoldSweepWorker(
                interval_seconds=self.config.hold_sweep_interval_seconds
            )

        if self.config.overdue_reservation_enabled:
            self.workers["overdue_reservation"] = OverdueReservationWorker(
                interval_seconds=self.config.overdue_reservation_interval_seconds
            )

        self.workers["idempotency_cleanup"] = IdempotencyCleanupWorker(
            interval_seconds=self.config.idempotency_cleanup_interval_seconds
        )

        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )

        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map of worker name to running status."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
