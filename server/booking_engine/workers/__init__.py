"""Background workers for storage hygiene."""

from .hold_sweep_worker import HoldSweepWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker
from .overdue_reservation_worker import OverdueReservationWorker

__all__ = ["HoldSweepWorker", "IdempotencyCleanupWorker", "OverdueReservationWorker"]
