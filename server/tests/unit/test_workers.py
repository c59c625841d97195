"""Unit tests for background workers."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking_engine.core.config import Settings
from booking_engine.core.database import utcnow
from booking_engine.core.observability import REGISTRY
from booking_engine.models import BookingStatus, HoldStatus
from booking_engine.services.booking_service import BookingService
from booking_engine.services.hold_service import HoldService
from booking_engine.services.idempotency_service import IdempotencyService
from booking_engine.workers import HoldSweepWorker, IdempotencyCleanupWorker, OverdueReservationWorker
from booking_engine.workers.base import BaseWorker
from booking_engine.workers.manager import WorkerManager


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.mark.asyncio
async def test_hold_sweep_worker_expires_lapsed_holds(session_factory, make_hold):
    lapsed = await make_hold(now=utcnow() - timedelta(minutes=30))
    live = await make_hold(now=utcnow())
    worker = HoldSweepWorker(session_factory=session_factory)

    assert await worker.process() == 1

    async with session_factory() as db:
        service = HoldService(db)
        assert (await service.get_hold(lapsed.id)).status == HoldStatus.EXPIRED
        assert (await service.get_hold(live.id)).status == HoldStatus.ACTIVE


@pytest.mark.asyncio
async def test_overdue_reservation_worker_cancels_unpaid(session_factory, make_booking):
    overdue = await make_booking(now=utcnow() - timedelta(days=8))
    await make_booking(now=utcnow())
    worker = OverdueReservationWorker(session_factory=session_factory)

    assert await worker.process() == 1

    async with session_factory() as db:
        booking = await BookingService(db).get_booking_by_id(overdue.id)
        assert booking.status == BookingStatus.CANCELLED


@pytest.mark.asyncio
async def test_idempotency_cleanup_worker(session_factory, test_session):
    service = IdempotencyService(test_session)
    await service.store_response(
        "old-key", "checkout/session", {"adults": 2}, 201, {"hold_id": "x"}, now=utcnow() - timedelta(hours=25)
    )
    await service.store_response("new-key", "checkout/session", {"adults": 2}, 201, {"hold_id": "y"})

    assert await IdempotencyCleanupWorker(session_factory=session_factory).process() == 1
    assert await service.check_idempotency("new-key", "checkout/session", {"adults": 2}) == (201, {"hold_id": "y"})


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory):
    worker = HoldSweepWorker(interval_seconds=3600, session_factory=session_factory)

    await worker.start()
    assert worker.running
    await worker.stop()
    assert not worker.running


def test_manager_respects_settings():
    manager = WorkerManager(Settings(hold_sweep_enabled=False, overdue_reservation_enabled=True))

    assert set(manager.workers) == {"overdue_reservation", "idempotency_cleanup"}
    assert manager.get_worker_status() == {"overdue_reservation": False, "idempotency_cleanup": False}


class BrokenWorker(BaseWorker):
    async def process(self) -> int:
        raise RuntimeError("database went away")


@pytest.mark.asyncio
async def test_run_once_counts_iterations(session_factory):
    worker = HoldSweepWorker(session_factory=session_factory)
    before = REGISTRY.get_sample_value("worker_runs_total", {"worker": "HoldSweep", "outcome": "ok"}) or 0

    assert await worker.run_once() == 0
    assert REGISTRY.get_sample_value("worker_runs_total", {"worker": "HoldSweep", "outcome": "ok"}) == before + 1


@pytest.mark.asyncio
async def test_run_once_propagates_and_counts_errors():
    worker = BrokenWorker(name="Broken")

    with pytest.raises(RuntimeError):
        await worker.run_once()
    assert REGISTRY.get_sample_value("worker_runs_total", {"worker": "Broken", "outcome": "error"}) == 1
