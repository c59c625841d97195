"""Concurrency tests for holds and reservations."""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from booking_engine.core.database import Base
from booking_engine.core.exceptions import CapacityExceededError
from booking_engine.models import Agent, Booking, Hold, HoldStatus
from booking_engine.schemas.booking import ContactDetails, ReserveBookingRequest
from booking_engine.schemas.checkout import CreateCheckoutSessionRequest
from booking_engine.schemas.tour import CreateTourRequest
from booking_engine.services.booking_service import BookingService
from booking_engine.services.hold_service import HoldService
from booking_engine.services.tour_service import TourService


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Sessions on a shared file database, one connection each, like separate requests."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def tour_id(session_factory):
    async with session_factory() as session:
        agent = Agent(business_name="Rift Valley Expeditions", business_email="ops@riftvalley.example")
        session.add(agent)
        await session.commit()

        tour = await TourService(session).create_tour(
            CreateTourRequest(
                agent_id=agent.id,
                title="Lake Nakuru Day Trip",
                slug="lake-nakuru-day-trip",
                status="ACTIVE",
                max_group_size=10,
                base_price=8000,
            )
        )
        return tour.id


@pytest.mark.asyncio
async def test_concurrent_holds_no_overselling(session_factory, tour_id, now):
    """Fifteen parties of two racing for ten spots: exactly five get through."""
    start = now.date() + timedelta(days=30)

    async def create_hold(buyer: int):
        async with session_factory() as session:
            hold, _ = await HoldService(session).create_hold(
                CreateCheckoutSessionRequest(tour_id=tour_id, start_date=start, adults=2),
                user_id=f"buyer-{buyer}",
                now=now,
            )
            return hold

    results = await asyncio.gather(*(create_hold(i) for i in range(15)), return_exceptions=True)

    held = [r for r in results if isinstance(r, Hold)]
    rejected = [r for r in results if isinstance(r, CapacityExceededError)]
    assert len(held) == 5
    assert len(rejected) == 10

    async with session_factory() as session:
        total = await session.scalar(
            select(func.sum(Hold.spots_held)).where(Hold.status == HoldStatus.ACTIVE.value)
        )
    assert total == 10


@pytest.mark.asyncio
async def test_concurrent_reserve_of_one_hold_creates_one_booking(session_factory, tour_id, now):
    async with session_factory() as session:
        hold, _ = await HoldService(session).create_hold(
            CreateCheckoutSessionRequest(tour_id=tour_id, start_date=now.date() + timedelta(days=30), adults=2),
            now=now,
        )

    contact = ContactDetails(name="Wanjiru Kamau", email="wanjiru@example.com")

    async def reserve():
        async with session_factory() as session:
            return await BookingService(session).reserve(
                ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now
            )

    bookings = await asyncio.gather(*(reserve() for _ in range(5)))

    assert len({b.id for b in bookings}) == 1
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Booking)) == 1
