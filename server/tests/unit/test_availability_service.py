"""Unit tests for the availability calendar."""

from datetime import timedelta
from uuid import uuid4

import pytest

from booking_engine.core.exceptions import NotFoundError
from booking_engine.models import AvailabilityType, Tour, TourStatus
from booking_engine.schemas.availability import (
    AvailabilityCheckRequest,
    CalendarRequest,
    ClearAvailabilityRequest,
    SetAvailabilityRequest,
)
from booking_engine.services.availability_service import AvailabilityService


@pytest.fixture
def service(test_session):
    return AvailabilityService(test_session)


@pytest.mark.asyncio
async def test_calendar_reflects_holds_and_overrides(service, tour, make_hold, now):
    start = now.date() + timedelta(days=20)
    await make_hold(days_ahead=20, adults=4)
    await service.set_entries(
        SetAvailabilityRequest(tour_id=tour.id, dates=[start + timedelta(days=5)], type="BLOCKED", note="Park closed")
    )
    await service.set_entries(
        SetAvailabilityRequest(tour_id=tour.id, dates=[start + timedelta(days=6)], type="LIMITED", spots_available=3)
    )

    calendar = await service.get_calendar(
        CalendarRequest(tour_id=tour.id, date_from=start, date_to=start + timedelta(days=6), guests=2), now=now
    )

    days = {d.date: d for d in calendar.days}
    assert len(days) == 7

    first = days[start]
    assert first.available
    assert (first.capacity, first.held_spots, first.booked_spots, first.spots_available) == (10, 4, 0, 6)
    # The hold covers every night of the trip
    assert days[start + timedelta(days=2)].held_spots == 4
    assert days[start + timedelta(days=3)].held_spots == 0

    blocked = days[start + timedelta(days=5)]
    assert not blocked.available
    assert blocked.type == AvailabilityType.BLOCKED
    assert blocked.reason == "Park closed"
    assert blocked.spots_available == 0

    limited = days[start + timedelta(days=6)]
    assert limited.available
    assert limited.type == AvailabilityType.LIMITED
    assert limited.spots_available == 3

    assert calendar.summary.total_days == 7
    assert calendar.summary.available_days == 6
    assert calendar.summary.blocked_days == 1
    assert calendar.summary.limited_days == 1


@pytest.mark.asyncio
async def test_calendar_explains_short_days(service, tour, now):
    day = now.date() + timedelta(days=10)
    await service.set_entries(SetAvailabilityRequest(tour_id=tour.id, dates=[day], type="LIMITED", spots_available=3))

    calendar = await service.get_calendar(
        CalendarRequest(tour_id=tour.id, date_from=day, date_to=day, guests=4), now=now
    )

    [entry] = calendar.days
    assert not entry.available
    assert entry.reason == "Only 3 spots remaining"


@pytest.mark.asyncio
async def test_check_available_range(service, tour, make_booking, now):
    start = now.date() + timedelta(days=20)
    await make_booking(days_ahead=20, adults=3)

    result = await service.check(AvailabilityCheckRequest(tour_id=tour.id, start_date=start, guests=5), now=now)

    assert result.available
    assert result.end_date == start + timedelta(days=2)
    assert result.spots_remaining == 7


@pytest.mark.asyncio
async def test_check_reports_blocked_dates(service, tour, now):
    start = now.date() + timedelta(days=20)
    await service.set_entries(
        SetAvailabilityRequest(tour_id=tour.id, dates=[start + timedelta(days=1)], type="BLOCKED")
    )

    result = await service.check(AvailabilityCheckRequest(tour_id=tour.id, start_date=start, guests=1), now=now)

    assert not result.available
    assert result.blocked_dates == [start + timedelta(days=1)]


@pytest.mark.asyncio
async def test_check_reports_first_short_day(service, tour, make_hold, now):
    start = now.date() + timedelta(days=20)
    await make_hold(days_ahead=21, adults=8)

    result = await service.check(AvailabilityCheckRequest(tour_id=tour.id, start_date=start, guests=3), now=now)

    assert not result.available
    assert result.insufficient_date == start + timedelta(days=1)
    assert result.spots_remaining == 2


@pytest.mark.asyncio
async def test_check_party_larger_than_tour(service, tour, now):
    result = await service.check(
        AvailabilityCheckRequest(tour_id=tour.id, start_date=now.date() + timedelta(days=20), guests=11), now=now
    )

    assert not result.available
    assert result.reason == "Maximum group size is 10"


@pytest.mark.asyncio
async def test_check_paused_tour(test_session, service, tour, now):
    db_tour = await test_session.get(Tour, tour.id)
    db_tour.status = TourStatus.PAUSED.value
    await test_session.commit()

    result = await service.check(
        AvailabilityCheckRequest(tour_id=tour.id, start_date=now.date() + timedelta(days=20), guests=1), now=now
    )

    assert not result.available
    assert result.reason == "Tour is not open for booking"


@pytest.mark.asyncio
async def test_set_entries_overwrites_existing_date(service, tour, now):
    day = now.date() + timedelta(days=10)

    await service.set_entries(SetAvailabilityRequest(tour_id=tour.id, dates=[day], type="LIMITED", spots_available=4))
    [entry] = await service.set_entries(SetAvailabilityRequest(tour_id=tour.id, dates=[day, day], type="BLOCKED"))

    assert entry.type == AvailabilityType.BLOCKED
    assert entry.spots_available is None
    assert len(await service.list_entries(tour.id, day, day)) == 1


@pytest.mark.asyncio
async def test_clear_entries_restores_default_capacity(service, tour, now):
    day = now.date() + timedelta(days=10)
    await service.set_entries(SetAvailabilityRequest(tour_id=tour.id, dates=[day], type="BLOCKED"))

    assert await service.clear_entries(ClearAvailabilityRequest(tour_id=tour.id, dates=[day])) == 1
    assert await service.clear_entries(ClearAvailabilityRequest(tour_id=tour.id, dates=[day])) == 0

    calendar = await service.get_calendar(CalendarRequest(tour_id=tour.id, date_from=day, date_to=day), now=now)
    assert calendar.days[0].type == AvailabilityType.AVAILABLE
    assert calendar.days[0].capacity == 10


@pytest.mark.asyncio
async def test_unknown_tour(service, now):
    with pytest.raises(NotFoundError):
        await service.set_entries(SetAvailabilityRequest(tour_id=uuid4(), dates=[now.date()], type="BLOCKED"))


def test_limited_requires_spots():
    with pytest.raises(ValueError):
        SetAvailabilityRequest(tour_id=uuid4(), dates=["2026-05-01"], type="LIMITED")
