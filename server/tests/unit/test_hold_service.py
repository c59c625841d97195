"""Unit tests for checkout holds."""

from datetime import timedelta
from uuid import uuid4

import pytest

from booking_engine.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    HoldExpiredError,
    HoldNotFoundError,
    TourUnavailableError,
    ValidationError,
)
from booking_engine.models import HoldStatus, Tour, TourStatus
from booking_engine.schemas.checkout import CreateCheckoutSessionRequest
from booking_engine.services.capacity_service import CapacityService
from booking_engine.services.hold_service import HoldService


@pytest.mark.asyncio
async def test_create_hold_quotes_and_reserves(test_session, tour, now):
    service = HoldService(test_session)
    start = now.date() + timedelta(days=30)

    hold, breakdown = await service.create_hold(
        CreateCheckoutSessionRequest(tour_id=tour.id, start_date=start, adults=2, children=1),
        now=now,
    )

    assert hold.status == HoldStatus.ACTIVE
    assert hold.start_date == start
    assert hold.end_date == start + timedelta(days=tour.duration_nights)
    assert hold.spots_held == 3
    assert hold.expires_at == now + timedelta(minutes=15)
    assert hold.quoted_total == breakdown.total_amount
    # 2 x 10000 + 7000 for the child, plus 5% service fee
    assert breakdown.total_amount == 28350


@pytest.mark.asyncio
async def test_create_hold_classifies_traveler_ages(test_session, tour, now):
    hold, _ = await HoldService(test_session).create_hold(
        CreateCheckoutSessionRequest(
            tour_id=tour.id,
            start_date=now.date() + timedelta(days=30),
            traveler_ages=[40, 38, 9, 1],
        ),
        now=now,
    )

    assert (hold.adults, hold.children, hold.infants) == (2, 1, 1)
    assert hold.spots_held == 4


@pytest.mark.asyncio
async def test_create_hold_rejects_past_start(test_session, tour, now):
    with pytest.raises(ValidationError):
        await HoldService(test_session).create_hold(
            CreateCheckoutSessionRequest(tour_id=tour.id, start_date=now.date() - timedelta(days=1), adults=1),
            now=now,
        )


@pytest.mark.asyncio
async def test_create_hold_requires_an_adult(test_session, tour, now):
    with pytest.raises(ValidationError):
        await HoldService(test_session).create_hold(
            CreateCheckoutSessionRequest(
                tour_id=tour.id, start_date=now.date() + timedelta(days=5), traveler_ages=[8, 6]
            ),
            now=now,
        )


@pytest.mark.asyncio
async def test_create_hold_on_paused_tour(test_session, tour, now):
    db_tour = await test_session.get(Tour, tour.id)
    db_tour.status = TourStatus.PAUSED.value
    await test_session.commit()

    with pytest.raises(TourUnavailableError):
        await HoldService(test_session).create_hold(
            CreateCheckoutSessionRequest(tour_id=tour.id, start_date=now.date() + timedelta(days=5), adults=1),
            now=now,
        )


@pytest.mark.asyncio
async def test_create_hold_rejects_unknown_addon(test_session, tour, now):
    with pytest.raises(ValidationError):
        await HoldService(test_session).create_hold(
            CreateCheckoutSessionRequest(
                tour_id=tour.id,
                start_date=now.date() + timedelta(days=5),
                adults=1,
                selected_addon_ids=[uuid4()],
            ),
            now=now,
        )


@pytest.mark.asyncio
async def test_holds_cannot_oversell(make_hold):
    await make_hold(adults=6)
    await make_hold(adults=4)

    with pytest.raises(CapacityExceededError):
        await make_hold(adults=1)


@pytest.mark.asyncio
async def test_requote_supersedes_buyers_previous_hold(test_session, tour, make_hold, now):
    first = await make_hold(adults=8, user_id="buyer-1")
    # Without superseding, 8 + 8 would not fit in a group of 10
    second = await make_hold(adults=8, user_id="buyer-1")

    first = await HoldService(test_session).get_hold(first.id)
    assert first.status == HoldStatus.RELEASED
    assert second.status == HoldStatus.ACTIVE
    start = now.date() + timedelta(days=30)
    assert await CapacityService(test_session).occupied_spots(tour, start, now) == 8


@pytest.mark.asyncio
async def test_expired_hold_frees_capacity(make_hold, now):
    await make_hold(adults=10)

    with pytest.raises(CapacityExceededError):
        await make_hold(adults=1, now=now + timedelta(minutes=14))

    hold = await make_hold(adults=10, now=now + timedelta(minutes=15))
    assert hold.spots_held == 10


@pytest.mark.asyncio
async def test_extend_hold(test_session, make_hold, now):
    hold = await make_hold()
    service = HoldService(test_session)

    extended = await service.extend_hold(hold.id, now=now + timedelta(minutes=10))

    assert extended.expires_at == now + timedelta(minutes=25)
    assert extended.status == HoldStatus.ACTIVE


@pytest.mark.asyncio
async def test_extend_lapsed_hold_is_rejected(test_session, make_hold, now):
    hold = await make_hold()

    with pytest.raises(HoldExpiredError):
        await HoldService(test_session).extend_hold(hold.id, now=now + timedelta(minutes=16))


@pytest.mark.asyncio
async def test_release_hold_is_idempotent(test_session, make_hold):
    hold = await make_hold()
    service = HoldService(test_session)

    released = await service.release_hold(hold.id)
    again = await service.release_hold(hold.id)

    assert released.status == HoldStatus.RELEASED
    assert again.status == HoldStatus.RELEASED


@pytest.mark.asyncio
async def test_release_consumed_hold_conflicts(test_session, make_booking):
    booking = await make_booking()

    with pytest.raises(ConflictError):
        await HoldService(test_session).release_hold(booking.hold_id)


@pytest.mark.asyncio
async def test_unknown_hold(test_session):
    with pytest.raises(HoldNotFoundError):
        await HoldService(test_session).get_hold_or_raise(uuid4())


@pytest.mark.asyncio
async def test_sweep_relabels_only_lapsed_holds(test_session, make_hold, now):
    lapsed = await make_hold(adults=2, now=now - timedelta(minutes=30))
    live = await make_hold(adults=2)
    service = HoldService(test_session)

    assert await service.sweep_expired_holds(now=now) == 1

    assert (await service.get_hold(lapsed.id)).status == HoldStatus.EXPIRED
    assert (await service.get_hold(live.id)).status == HoldStatus.ACTIVE
    assert await service.sweep_expired_holds(now=now) == 0
