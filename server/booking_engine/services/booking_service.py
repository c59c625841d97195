"""Booking lifecycle: reserve, confirm, fail, reverse, cancel and complete."""

import logging
import math
import secrets
import string
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import (
    AlreadyCancelledError,
    CannotCancelCompletedError,
    HoldExpiredError,
    InvalidTransitionError,
    NotFoundError,
)
from ..core.locks import slot_locks
from ..core.observability import metrics_collector
from ..models.agent import AgentEarning, EarningType
from ..models.booking import Booking, BookingStatus, HoldStatus, PaymentStatus, RELEASED_BOOKING_STATUSES
from ..models.payment import Payment, PaymentMethod
from ..schemas.booking import CancelBookingRequest, CancellationResult, ReserveBookingRequest
from .hold_service import HoldService
from .notification_service import NotificationService
from .pricing_engine import percent_of
from .quote_service import QuoteService
from .tour_service import TourService

logger = logging.getLogger(__name__)

OVERDUE_CANCELLATION_REASON = "Payment not received by due date"


def payment_due_at(start_date: date, now: datetime) -> datetime:
    """Earlier of the payment window closing and the pre-departure cutoff."""
    window_closes = now + timedelta(days=settings.payment_due_days)
    cutoff = datetime.combine(start_date - timedelta(days=settings.payment_due_buffer_days), time.min)
    return min(window_closes, cutoff)


def days_until_start(start_date: date, now: datetime) -> int:
    """Whole days until the start date, rounded up; negative once the trip has begun."""
    remaining = datetime.combine(start_date, time.min) - now
    return math.ceil(remaining / timedelta(days=1))


def refund_percentage(days: int, free_cancellation_days: int) -> int:
    if days >= free_cancellation_days:
        return 100
    if days >= 7:
        return 50
    if days >= 3:
        return 25
    return 0


def proportional_adjustment(agent_earnings: int, refund: int, paid: int) -> int:
    """Negative earnings adjustment matching the refunded share of what was paid."""
    if refund <= 0 or paid <= 0:
        return 0
    share = Decimal(agent_earnings) * Decimal(refund) / Decimal(paid)
    return -int(share.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class BookingService:
    """Service for booking-related operations."""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        self.db = db
        self.tour_service = TourService(db)
        self.hold_service = HoldService(db)
        self.quote_service = QuoteService(db)
        self.notifications = notifications or NotificationService()

    def _generate_booking_reference(self, length: int = 8) -> str:
        """Generate a random human-readable booking reference."""
        alphabet = string.ascii_uppercase + string.digits
        return "BK" + ''.join(secrets.choice(alphabet) for _ in range(length))

    async def reserve(
        self,
        request: ReserveBookingRequest,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """
        Turn a live hold into a PENDING booking that is paid later.

        Reserving an already consumed hold returns the booking it produced.

        Raises:
            HoldNotFoundError: If the hold does not exist
            HoldExpiredError: If the hold lapsed or was released
            PriceChangedError: If a hold without a stored breakdown re-prices differently
        """
        now = now or utcnow()
        hold_id = request.hold_id
        hold = await self.hold_service.get_hold_or_raise(hold_id)

        if hold.status == HoldStatus.CONSUMED:
            existing = await self.get_booking_by_hold_id(hold_id)
            if existing:
                logger.info(
                    "Booking already exists for hold - returning existing booking",
                    extra={"hold_id": str(hold_id), "booking_id": str(existing.id)}
                )
                return existing

        if not hold.is_live(now):
            logger.warning(
                "Reservation failed - hold no longer active",
                extra={
                    "hold_id": str(hold_id),
                    "hold_status": hold.status,
                    "expired_at": hold.expires_at.isoformat(),
                }
            )
            raise HoldExpiredError(str(hold_id), hold.expires_at, hold.status)

        tour = await self.tour_service.get_tour_by_id_or_raise(hold.tour_id)
        agent = await self.tour_service.get_agent_by_id_or_raise(tour.agent_id)

        async with slot_locks(self.db, hold.tour_id, hold.start_date, hold.end_date):
            hold = await self.hold_service.get_hold_or_raise(hold_id)
            if hold.status == HoldStatus.CONSUMED:
                existing = await self.get_booking_by_hold_id(hold_id)
                if existing:
                    return existing
            if not hold.is_live(now):
                raise HoldExpiredError(str(hold_id), hold.expires_at, hold.status)

            breakdown = await self.quote_service.held_price(hold, tour)
            commission = percent_of(breakdown.total_amount, agent.commission_rate)

            reference = self._generate_booking_reference()
            while await self.get_booking_by_reference(reference):
                reference = self._generate_booking_reference()

            booking = Booking(
                reference=reference,
                hold_id=hold.id,
                tour_id=tour.id,
                agent_id=agent.id,
                user_id=hold.user_id or user_id,
                contact_name=request.contact.name,
                contact_email=request.contact.email,
                contact_phone=request.contact.phone,
                special_requests=request.special_requests,
                start_date=hold.start_date,
                end_date=hold.end_date,
                adults=hold.adults,
                children=hold.children,
                infants=hold.infants,
                selected_accommodation_ids=list(hold.selected_accommodation_ids),
                selected_addon_ids=list(hold.selected_addon_ids),
                currency=breakdown.currency,
                base_amount=breakdown.base_amount,
                accommodation_amount=breakdown.accommodation_amount,
                activities_amount=breakdown.activities_amount,
                tax_amount=breakdown.tax_amount,
                discount_amount=breakdown.discount_amount,
                total_amount=breakdown.total_amount,
                deposit_amount=breakdown.deposit_amount,
                platform_commission=commission,
                agent_earnings=breakdown.total_amount - commission,
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_due_at=payment_due_at(hold.start_date, now),
            )
            hold.status = HoldStatus.CONSUMED.value

            self.db.add(booking)
            await self.db.commit()

        metrics_collector.record_booking_reserved(str(tour.id))
        logger.info(
            "Booking reserved successfully",
            extra={
                "booking_id": str(booking.id),
                "booking_reference": booking.reference,
                "hold_id": str(hold_id),
                "total_amount": booking.total_amount,
                "payment_due_at": booking.payment_due_at.isoformat(),
            }
        )

        await self.notifications.reservation_created(booking)
        return booking

    async def get_booking_for_update(self, booking_id: UUID) -> Booking:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = (await self.db.execute(stmt)).scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def _earning_exists(self, booking_id: UUID, earning_type: EarningType) -> bool:
        stmt = select(AgentEarning.id).where(
            AgentEarning.booking_id == booking_id,
            AgentEarning.type == earning_type.value,
        )
        return (await self.db.execute(stmt)).first() is not None

    async def _record_earning(
        self,
        booking: Booking,
        earning_type: EarningType,
        amount: int,
        description: str,
        payment_id: UUID | None = None,
    ) -> bool:
        """Add a ledger entry unless one of this type already exists for the booking."""
        if await self._earning_exists(booking.id, earning_type):
            logger.info(
                "Agent earning already recorded - skipping",
                extra={"booking_id": str(booking.id), "type": earning_type.value}
            )
            return False
        self.db.add(
            AgentEarning(
                agent_id=booking.agent_id,
                booking_id=booking.id,
                payment_id=payment_id,
                amount=amount,
                currency=booking.currency,
                type=earning_type.value,
                description=description,
            )
        )
        return True

    async def _apply_refund(self, booking: Booking, refund: int, paid: int, percentage: int) -> None:
        """
        Record the refund owed on a cancelled booking and the matching debit.

        Re-applied whenever more money arrives after cancellation, so the single
        REFUND_ADJUSTMENT entry is amended rather than duplicated.
        """
        booking.refund_amount = refund
        if refund <= 0:
            return
        booking.payment_status = (
            PaymentStatus.REFUNDED.value if refund >= paid else PaymentStatus.PARTIALLY_REFUNDED.value
        )
        if not await self._earning_exists(booking.id, EarningType.BOOKING):
            return

        adjustment = proportional_adjustment(booking.agent_earnings, refund, paid)
        description = f"Refund adjustment for booking {booking.reference} ({percentage}%)"
        existing = (
            await self.db.execute(
                select(AgentEarning).where(
                    AgentEarning.booking_id == booking.id,
                    AgentEarning.type == EarningType.REFUND_ADJUSTMENT.value,
                )
            )
        ).scalar_one_or_none()
        if existing is None:
            await self._record_earning(booking, EarningType.REFUND_ADJUSTMENT, adjustment, description)
        else:
            existing.amount = adjustment
            existing.description = description

    async def _late_refund_percentage(self, booking: Booking) -> int:
        """Refund tier that applied when the booking was cancelled."""
        if (
            booking.status == BookingStatus.REFUNDED
            or booking.cancelled_at is None
            or booking.cancellation_reason == OVERDUE_CANCELLATION_REASON
        ):
            return 100
        tour = await self.tour_service.get_tour_by_id_or_raise(booking.tour_id)
        return refund_percentage(days_until_start(booking.start_date, booking.cancelled_at), tour.free_cancellation_days)

    async def _settle_late_payment(self, booking: Booking, payment: Payment) -> None:
        """
        A charge captured after the booking was cancelled.

        The booking stays cancelled. The money is credited like any payment and
        then refunded on the terms the cancellation was made under.
        """
        percentage = await self._late_refund_percentage(booking)
        booking.payment_status = PaymentStatus.COMPLETED.value
        await self._record_earning(
            booking,
            EarningType.BOOKING,
            booking.agent_earnings,
            f"Earnings for booking {booking.reference}",
            payment_id=payment.id,
        )
        await self.db.flush()

        paid = await self.total_paid(booking.id)
        refund = percent_of(paid, percentage)
        await self._apply_refund(booking, refund, paid, percentage)

        logger.warning(
            "Payment completed for a cancelled booking - refunding on cancellation terms",
            extra={
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "amount": payment.amount,
                "refund_percentage": percentage,
                "refund_amount": refund,
            }
        )

    async def confirm_payment(
        self,
        payment: Payment,
        now: datetime | None = None,
        confirmation_code: str | None = None,
        method: PaymentMethod | None = None,
    ) -> Booking:
        """
        Record a successful payment and confirm its booking.

        Safe to call repeatedly for the same payment: the booking is confirmed
        and the agent credited only once.
        """
        now = now or utcnow()
        booking = await self.get_booking_for_update(payment.booking_id)

        if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            logger.info(
                "Payment already settled - skipping confirmation",
                extra={"payment_id": str(payment.id), "payment_status": payment.status}
            )
            return booking

        payment.status = PaymentStatus.COMPLETED.value
        payment.completed_at = now
        payment.status_message = "Payment completed"
        if confirmation_code:
            payment.confirmation_code = confirmation_code
        if method is not None:
            payment.method = method.value

        confirmed = False
        if booking.status in RELEASED_BOOKING_STATUSES:
            await self._settle_late_payment(booking, payment)
        else:
            booking.payment_status = PaymentStatus.COMPLETED.value
            if booking.status == BookingStatus.PENDING:
                booking.status = BookingStatus.CONFIRMED.value
                confirmed = True
            await self._record_earning(
                booking,
                EarningType.BOOKING,
                booking.agent_earnings,
                f"Earnings for booking {booking.reference}",
                payment_id=payment.id,
            )

        await self.db.commit()

        if confirmed:
            metrics_collector.record_booking_confirmed(str(booking.tour_id))
            logger.info(
                "Booking confirmed",
                extra={
                    "booking_id": str(booking.id),
                    "booking_reference": booking.reference,
                    "payment_id": str(payment.id),
                }
            )
            await self.notifications.booking_confirmed(booking)
        return booking

    async def mark_payment_failed(
        self, payment: Payment, message: str | None = None, now: datetime | None = None
    ) -> Booking:
        """The booking stays PENDING and keeps its spots so the buyer can retry."""
        now = now or utcnow()
        booking = await self.get_booking_for_update(payment.booking_id)

        if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.FAILED):
            return booking

        payment.status = PaymentStatus.FAILED.value
        payment.failed_at = now
        payment.status_message = message or "Payment failed"
        if booking.payment_status != PaymentStatus.COMPLETED:
            booking.payment_status = PaymentStatus.FAILED.value
        await self.db.commit()

        logger.info(
            "Payment failed",
            extra={"booking_id": str(booking.id), "payment_id": str(payment.id), "status_message": message}
        )
        return booking

    async def apply_reversal(self, payment: Payment, now: datetime | None = None) -> Booking:
        """Gateway reversed a completed charge: refund the booking and claw back earnings once."""
        now = now or utcnow()
        booking = await self.get_booking_for_update(payment.booking_id)

        if payment.status == PaymentStatus.REFUNDED:
            return booking

        payment.status = PaymentStatus.REFUNDED.value
        payment.status_message = "Payment reversed by gateway"
        booking.payment_status = PaymentStatus.REFUNDED.value

        if booking.status == BookingStatus.CONFIRMED:
            booking.status = BookingStatus.REFUNDED.value
            booking.refund_amount = payment.amount
            booking.cancelled_at = now
            if await self._earning_exists(booking.id, EarningType.BOOKING):
                await self._record_earning(
                    booking,
                    EarningType.REFUND_ADJUSTMENT,
                    -booking.agent_earnings,
                    f"Reversal of booking {booking.reference}",
                    payment_id=payment.id,
                )
            metrics_collector.record_booking_cancelled("reversal", payment.amount, booking.currency)

        await self.db.commit()

        logger.warning(
            "Payment reversed",
            extra={
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "booking_status": booking.status,
            }
        )
        return booking

    async def total_paid(self, booking_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        return int((await self.db.execute(stmt)).scalar_one())

    async def cancel(self, request: CancelBookingRequest, now: datetime | None = None) -> CancellationResult:
        """
        Cancel a booking and work out the refund owed from the cancellation tier.

        Raises:
            NotFoundError: If booking not found
            AlreadyCancelledError: If the booking is cancelled or refunded
            CannotCancelCompletedError: If the trip already took place
        """
        now = now or utcnow()
        booking = await self.get_booking_for_update(request.booking_id)
        booking_id = str(booking.id)

        if booking.status in RELEASED_BOOKING_STATUSES:
            raise AlreadyCancelledError(booking_id, booking.status)
        if booking.status == BookingStatus.COMPLETED:
            raise CannotCancelCompletedError(booking_id)

        tour = await self.tour_service.get_tour_by_id_or_raise(booking.tour_id)
        days = days_until_start(booking.start_date, now)
        percentage = refund_percentage(days, tour.free_cancellation_days)
        paid = await self.total_paid(booking.id)
        refund = percent_of(paid, percentage)

        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = now
        booking.cancellation_reason = request.reason
        await self._apply_refund(booking, refund, paid, percentage)

        await self.db.commit()

        metrics_collector.record_booking_cancelled("buyer", refund, booking.currency)
        logger.info(
            "Booking cancelled successfully",
            extra={
                "booking_id": booking_id,
                "booking_reference": booking.reference,
                "days_until_start": days,
                "refund_percentage": percentage,
                "refund_amount": refund,
                "total_paid": paid,
            }
        )
        await self.notifications.booking_cancelled(booking)

        return CancellationResult(
            booking_id=booking.id,
            status=booking.status,
            payment_status=booking.payment_status,
            refund_amount=refund,
            refund_percentage=percentage,
            days_until_start=days,
            free_cancellation_days=tour.free_cancellation_days,
            total_paid=paid,
            currency=booking.currency,
        )

    async def complete(self, booking_id: UUID, now: datetime | None = None) -> Booking:
        """
        Mark a confirmed trip as completed.

        Raises:
            InvalidTransitionError: If the booking is not CONFIRMED
        """
        now = now or utcnow()
        booking = await self.get_booking_for_update(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(str(booking.id), booking.status, BookingStatus.COMPLETED.value)

        booking.status = BookingStatus.COMPLETED.value
        booking.completed_at = now
        await self.db.commit()

        logger.info("Booking completed", extra={"booking_id": str(booking.id)})
        return booking

    async def cancel_overdue_reservations(self, now: datetime | None = None, batch_size: int = 100) -> int:
        """Cancel PENDING bookings whose payment due date passed without a completed payment."""
        now = now or utcnow()
        paid = select(Payment.booking_id).where(Payment.status == PaymentStatus.COMPLETED.value)
        stmt = (
            select(Booking)
            .where(
                Booking.status == BookingStatus.PENDING.value,
                Booking.payment_due_at.is_not(None),
                Booking.payment_due_at <= now,
                Booking.id.not_in(paid),
            )
            .limit(batch_size)
        )
        overdue = list((await self.db.execute(stmt)).scalars())

        for booking in overdue:
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = now
            booking.cancellation_reason = OVERDUE_CANCELLATION_REASON
            booking.refund_amount = 0

        if overdue:
            await self.db.commit()
            for booking in overdue:
                metrics_collector.record_booking_cancelled("overdue", 0, booking.currency)
                await self.notifications.booking_cancelled(booking)
            logger.info(
                "Cancelled overdue reservations",
                extra={"cancelled_count": len(overdue)}
            )

        return len(overdue)

    async def get_booking(self, booking_id: UUID) -> Booking:
        return await self.get_booking_by_id_or_raise(booking_id)

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        """Get booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def get_booking_by_hold_id(self, hold_id: UUID) -> Booking | None:
        """Get booking by hold ID."""
        stmt = select(Booking).where(Booking.hold_id == hold_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_reference(self, reference: str) -> Booking | None:
        stmt = select(Booking).where(Booking.reference == reference)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
