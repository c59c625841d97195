"""Unit tests for the booking lifecycle."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from booking_engine.core.exceptions import (
    AlreadyCancelledError,
    CannotCancelCompletedError,
    HoldExpiredError,
    InvalidTransitionError,
    PriceChangedError,
)
from booking_engine.models import AgentEarning, BookingStatus, EarningType, HoldStatus, PaymentStatus
from booking_engine.schemas.booking import CancelBookingRequest, ReserveBookingRequest
from booking_engine.schemas.tour import UpsertPricingConfigRequest
from booking_engine.services.booking_service import (
    OVERDUE_CANCELLATION_REASON,
    BookingService,
    days_until_start,
    payment_due_at,
    proportional_adjustment,
    refund_percentage,
)
from booking_engine.services.capacity_service import CapacityService
from booking_engine.services.hold_service import HoldService
from booking_engine.services.tour_service import TourService


async def earnings_for(session, booking_id):
    result = await session.execute(
        select(AgentEarning).where(AgentEarning.booking_id == booking_id).order_by(AgentEarning.created_at)
    )
    return list(result.scalars())


def test_days_until_start_rounds_up():
    start = date(2026, 5, 20)

    assert days_until_start(start, datetime(2026, 5, 10, 0, 0)) == 10
    assert days_until_start(start, datetime(2026, 5, 10, 12, 0)) == 10
    assert days_until_start(start, datetime(2026, 5, 19, 23, 0)) == 1
    assert days_until_start(start, datetime(2026, 5, 21, 0, 0)) == -1


@pytest.mark.parametrize(
    "days,expected",
    [(30, 100), (14, 100), (13, 50), (7, 50), (6, 25), (3, 25), (2, 0), (0, 0), (-3, 0)],
)
def test_refund_percentage_tiers(days, expected):
    assert refund_percentage(days, free_cancellation_days=14) == expected


def test_payment_due_is_earlier_of_window_and_cutoff():
    now = datetime(2026, 3, 2, 9, 0)

    assert payment_due_at(date(2026, 4, 1), now) == now + timedelta(days=7)
    assert payment_due_at(date(2026, 3, 8), now) == datetime(2026, 3, 5, 0, 0)


def test_proportional_adjustment():
    assert proportional_adjustment(90000, 50000, 100000) == -45000
    assert proportional_adjustment(90000, 0, 100000) == 0
    assert proportional_adjustment(90000, 100, 0) == 0


@pytest.mark.asyncio
async def test_reserve_creates_pending_booking(test_session, make_hold, contact, now):
    hold = await make_hold(adults=2)

    booking = await BookingService(test_session).reserve(
        ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now
    )

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.reference.startswith("BK") and len(booking.reference) == 10
    assert booking.total_amount == hold.quoted_total == 21000
    assert booking.deposit_amount == 6300
    # 10% platform commission
    assert booking.platform_commission == 2100
    assert booking.agent_earnings == 18900
    assert booking.payment_due_at == now + timedelta(days=7)
    assert (await HoldService(test_session).get_hold(hold.id)).status == HoldStatus.CONSUMED


@pytest.mark.asyncio
async def test_reserve_twice_returns_same_booking(test_session, make_hold, contact, now):
    hold = await make_hold()
    service = BookingService(test_session)
    request = ReserveBookingRequest(hold_id=hold.id, contact=contact)

    first = await service.reserve(request, now=now)
    second = await service.reserve(request, now=now + timedelta(minutes=20))

    assert first.id == second.id


@pytest.mark.asyncio
async def test_reserve_expired_hold(test_session, make_hold, contact, now):
    hold = await make_hold()

    with pytest.raises(HoldExpiredError):
        await BookingService(test_session).reserve(
            ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now + timedelta(minutes=15)
        )


@pytest.mark.asyncio
async def test_reserve_released_hold(test_session, make_hold, contact, now):
    hold = await make_hold()
    await HoldService(test_session).release_hold(hold.id)

    with pytest.raises(HoldExpiredError):
        await BookingService(test_session).reserve(ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now)


@pytest.mark.asyncio
async def test_reserve_uses_price_quoted_at_hold_time(test_session, tour, make_hold, contact):
    """An early-bird discount quoted just before midnight survives a reservation just after."""
    await TourService(test_session).upsert_pricing_config(
        UpsertPricingConfigRequest(tour_id=tour.id, early_bird_days=30, early_bird_percent=10.0)
    )
    quoted_at = datetime(2026, 3, 1, 23, 55)
    hold = await make_hold(days_ahead=30, adults=2, now=quoted_at)

    booking = await BookingService(test_session).reserve(
        ReserveBookingRequest(hold_id=hold.id, contact=contact), now=quoted_at + timedelta(minutes=10)
    )

    assert booking.discount_amount == 2000
    assert booking.total_amount == hold.quoted_total


@pytest.mark.asyncio
async def test_reserve_ignores_pricing_changed_after_hold(test_session, tour, make_hold, contact, now):
    hold = await make_hold(adults=2)
    await TourService(test_session).upsert_pricing_config(
        UpsertPricingConfigRequest(tour_id=tour.id, service_fee_percent=25.0)
    )

    booking = await BookingService(test_session).reserve(
        ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now
    )

    assert hold.quoted_total == 21000
    assert booking.total_amount == hold.quoted_total
    assert booking.tax_amount == 1000


@pytest.mark.asyncio
async def test_reserve_hold_without_breakdown_rejects_new_price(test_session, tour, make_hold, contact, now):
    hold = await make_hold(adults=2)
    hold.price_breakdown = {}
    await test_session.commit()
    await TourService(test_session).upsert_pricing_config(
        UpsertPricingConfigRequest(tour_id=tour.id, service_fee_percent=25.0)
    )

    with pytest.raises(PriceChangedError) as exc_info:
        await BookingService(test_session).reserve(
            ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now
        )

    assert exc_info.value.code == "PRICE_CHANGED"
    assert exc_info.value.extensions["current_total"] == 25000


@pytest.mark.asyncio
async def test_confirm_payment_is_idempotent(test_session, make_booking, pay):
    booking = await make_booking()
    payment = await pay(booking)
    service = BookingService(test_session)

    await service.confirm_payment(payment)
    booking = await service.get_booking_by_id(booking.id)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.COMPLETED
    earnings = await earnings_for(test_session, booking.id)
    assert [(e.type, e.amount) for e in earnings] == [(EarningType.BOOKING, booking.agent_earnings)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "days_before,refund",
    [(20, 21000), (10, 10500), (5, 5250), (1, 0)],
)
async def test_cancellation_refund_tiers(test_session, make_booking, pay, now, days_before, refund):
    booking = await make_booking(days_ahead=30)
    await pay(booking)
    cancel_at = datetime.combine(booking.start_date - timedelta(days=days_before), datetime.min.time())

    result = await BookingService(test_session).cancel(
        CancelBookingRequest(booking_id=booking.id, reason="Change of plans"), now=cancel_at
    )

    assert result.days_until_start == days_before
    assert result.refund_amount == refund
    assert result.total_paid == 21000
    assert result.status == BookingStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_with_full_refund_frees_capacity(test_session, tour, make_booking, pay, now):
    booking = await make_booking(days_ahead=30, adults=10)
    await pay(booking)
    capacity = CapacityService(test_session)
    assert await capacity.occupied_spots(tour, booking.start_date, now) == 10

    result = await BookingService(test_session).cancel(CancelBookingRequest(booking_id=booking.id), now=now)

    assert result.refund_percentage == 100
    assert result.refund_amount == booking.total_amount
    assert result.payment_status == PaymentStatus.REFUNDED
    assert await capacity.occupied_spots(tour, booking.start_date, now) == 0

    earnings = await earnings_for(test_session, booking.id)
    assert sum(e.amount for e in earnings) == 0


@pytest.mark.asyncio
async def test_partial_refund_adjusts_earnings_proportionally(test_session, make_booking, pay):
    booking = await make_booking(days_ahead=30)
    await pay(booking)
    cancel_at = datetime.combine(booking.start_date - timedelta(days=10), datetime.min.time())

    result = await BookingService(test_session).cancel(CancelBookingRequest(booking_id=booking.id), now=cancel_at)

    assert result.payment_status == PaymentStatus.PARTIALLY_REFUNDED
    adjustment = [e for e in await earnings_for(test_session, booking.id) if e.type == EarningType.REFUND_ADJUSTMENT]
    assert [e.amount for e in adjustment] == [-9450]


@pytest.mark.asyncio
async def test_cancel_unpaid_booking_refunds_nothing(test_session, make_booking, now):
    booking = await make_booking()

    result = await BookingService(test_session).cancel(CancelBookingRequest(booking_id=booking.id), now=now)

    assert result.refund_percentage == 100
    assert result.refund_amount == 0
    assert result.payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_twice_conflicts(test_session, make_booking, now):
    booking = await make_booking()
    service = BookingService(test_session)
    await service.cancel(CancelBookingRequest(booking_id=booking.id), now=now)

    with pytest.raises(AlreadyCancelledError):
        await service.cancel(CancelBookingRequest(booking_id=booking.id), now=now)


@pytest.mark.asyncio
async def test_complete_then_cancel_is_rejected(test_session, make_booking, pay, now):
    booking = await make_booking()
    await pay(booking)
    service = BookingService(test_session)

    completed = await service.complete(booking.id, now=now)
    assert completed.status == BookingStatus.COMPLETED

    with pytest.raises(CannotCancelCompletedError):
        await service.cancel(CancelBookingRequest(booking_id=booking.id), now=now)


@pytest.mark.asyncio
async def test_complete_requires_confirmed(test_session, make_booking, now):
    booking = await make_booking()

    with pytest.raises(InvalidTransitionError):
        await BookingService(test_session).complete(booking.id, now=now)


@pytest.mark.asyncio
async def test_payment_after_cancellation_is_refunded(test_session, make_booking, pay, now):
    booking = await make_booking()
    service = BookingService(test_session)
    await service.cancel(CancelBookingRequest(booking_id=booking.id), now=now)

    await pay(booking)
    booking = await service.get_booking_by_id(booking.id)

    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.refund_amount == 21000
    earnings = await earnings_for(test_session, booking.id)
    assert sorted(e.amount for e in earnings) == [-18900, 18900]


@pytest.mark.asyncio
async def test_payment_after_late_cancellation_uses_cancellation_tier(test_session, make_booking, pay):
    booking = await make_booking(days_ahead=30)
    service = BookingService(test_session)
    # Ten days before the trip: the 50% tier
    await service.cancel(CancelBookingRequest(booking_id=booking.id), now=datetime(2026, 3, 22, 9, 0))

    await pay(booking)
    booking = await service.get_booking_by_id(booking.id)

    assert booking.payment_status == PaymentStatus.PARTIALLY_REFUNDED
    assert booking.refund_amount == 10500
    earnings = await earnings_for(test_session, booking.id)
    assert sorted((e.type, e.amount) for e in earnings) == [
        (EarningType.BOOKING, 18900),
        (EarningType.REFUND_ADJUSTMENT, -9450),
    ]


@pytest.mark.asyncio
async def test_reversal_refunds_and_claws_back(test_session, make_booking, pay, now):
    booking = await make_booking()
    payment = await pay(booking)
    service = BookingService(test_session)

    booking = await service.apply_reversal(payment, now=now)
    await service.apply_reversal(payment, now=now)

    assert booking.status == BookingStatus.REFUNDED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.refund_amount == payment.amount
    earnings = await earnings_for(test_session, booking.id)
    assert sorted(e.amount for e in earnings) == [-booking.agent_earnings, booking.agent_earnings]


@pytest.mark.asyncio
async def test_overdue_reservations_are_cancelled(test_session, tour, make_booking, pay, now):
    unpaid = await make_booking(days_ahead=30, adults=2)
    paid = await make_booking(days_ahead=30, adults=2)
    await pay(paid)
    service = BookingService(test_session)

    assert await service.cancel_overdue_reservations(now=now + timedelta(days=6)) == 0
    assert await service.cancel_overdue_reservations(now=now + timedelta(days=7)) == 1

    unpaid = await service.get_booking_by_id(unpaid.id)
    assert unpaid.status == BookingStatus.CANCELLED
    assert unpaid.cancellation_reason == OVERDUE_CANCELLATION_REASON
    assert (await service.get_booking_by_id(paid.id)).status == BookingStatus.CONFIRMED
    assert await CapacityService(test_session).occupied_spots(tour, unpaid.start_date, now) == 2
