"""Payment initiation and reconciliation against the gateway."""

import logging
import secrets
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import (
    AlreadyCancelledError,
    AlreadyPaidError,
    NotFoundError,
    PaymentGatewayError,
    PaymentInProgressError,
)
from ..core.observability import metrics_collector
from ..integrations.pesapal import GatewayOrder, PaymentGateway, TransactionStatus
from ..models.booking import Booking, BookingStatus, PaymentStatus, RELEASED_BOOKING_STATUSES
from ..models.payment import Payment, PaymentMethod
from ..schemas.payment import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentNotification,
    PaymentNotificationAck,
    PaymentStatusRequest,
    PaymentStatusResponse,
    PaymentSummary,
)
from .booking_service import BookingService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)


def _split_name(name: str) -> tuple[str, str]:
    first, _, last = name.strip().partition(" ")
    return first, last.strip()


class PaymentService:
    """
    Payments are the source of truth for money received.

    The webhook and the status poll both end in ``apply_gateway_status``, so
    whichever arrives first wins and the other becomes a no-op.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.booking_service = BookingService(db, notifications)

    def _merchant_reference(self, booking: Booking) -> str:
        return f"{booking.reference}-{secrets.token_hex(4).upper()}"

    async def _payment_in_flight(self, booking_id: UUID, now: datetime) -> Payment | None:
        """Latest PENDING or PROCESSING payment started inside the attempt window."""
        started_after = now - timedelta(minutes=settings.payment_attempt_window_minutes)
        stmt = (
            select(Payment)
            .where(
                Payment.booking_id == booking_id,
                Payment.status.in_(OPEN_PAYMENT_STATUSES),
                Payment.created_at > started_after,
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def initiate(self, request: InitiatePaymentRequest, now: datetime | None = None) -> InitiatePaymentResponse:
        """
        Create a payment for the outstanding amount and submit it to the gateway.

        Raises:
            NotFoundError: If booking not found
            AlreadyCancelledError: If the booking was cancelled or refunded
            AlreadyPaidError: If nothing remains to be paid
            PaymentInProgressError: If an earlier attempt is still awaiting the gateway
            PaymentGatewayError: If the gateway rejects the order
        """
        now = now or utcnow()
        # Row lock held until the PENDING payment is committed, so a concurrent
        # initiate sees it below
        booking = await self.booking_service.get_booking_for_update(request.booking_id)
        booking_id = str(booking.id)

        if booking.status in RELEASED_BOOKING_STATUSES:
            raise AlreadyCancelledError(booking_id, booking.status)

        paid = await self.booking_service.total_paid(booking.id)
        outstanding = booking.total_amount - paid
        if outstanding <= 0 or booking.status == BookingStatus.COMPLETED:
            raise AlreadyPaidError(booking_id, booking.status)

        in_flight = await self._payment_in_flight(booking.id, now)
        if in_flight is not None:
            logger.info(
                "Payment initiation refused - earlier attempt still open",
                extra={"booking_id": booking_id, "payment_id": str(in_flight.id)}
            )
            raise PaymentInProgressError(
                booking_id, booking.status, str(in_flight.id), in_flight.gateway_tracking_id
            )

        amount = outstanding
        if request.pay_deposit and paid == 0:
            amount = min(booking.deposit_amount, outstanding)

        payment = Payment(
            booking_id=booking.id,
            amount=amount,
            currency=booking.currency,
            method=PaymentMethod.UNKNOWN.value,
            merchant_reference=self._merchant_reference(booking),
            status=PaymentStatus.PENDING.value,
        )
        self.db.add(payment)
        await self.db.commit()

        first_name, last_name = _split_name(booking.contact_name)
        try:
            submission = await self.gateway.submit_order(
                GatewayOrder(
                    merchant_reference=payment.merchant_reference,
                    amount=amount,
                    currency=booking.currency,
                    description=f"Tour booking {booking.reference}",
                    email=booking.contact_email,
                    phone=booking.contact_phone,
                    first_name=first_name,
                    last_name=last_name,
                )
            )
        except PaymentGatewayError as e:
            payment.status = PaymentStatus.FAILED.value
            payment.failed_at = now
            payment.status_message = e.problem_details.get("detail")
            await self.db.commit()
            logger.error(
                "Payment initiation failed at gateway",
                extra={"booking_id": booking_id, "payment_id": str(payment.id)}
            )
            raise

        payment.gateway_tracking_id = submission.tracking_id
        payment.status = PaymentStatus.PROCESSING.value
        payment.status_message = "Payment initiated, awaiting completion"
        if booking.payment_status != PaymentStatus.COMPLETED:
            booking.payment_status = PaymentStatus.PROCESSING.value
        await self.db.commit()

        logger.info(
            "Payment initiated",
            extra={
                "booking_id": booking_id,
                "payment_id": str(payment.id),
                "amount": amount,
                "currency": booking.currency,
                "tracking_id": submission.tracking_id,
            }
        )

        return InitiatePaymentResponse(
            payment_id=payment.id,
            booking_id=booking.id,
            amount=amount,
            currency=booking.currency,
            merchant_reference=payment.merchant_reference,
            tracking_id=submission.tracking_id,
            redirect_url=submission.redirect_url,
            status=payment.status,
        )

    async def find_payment(self, tracking_id: str, merchant_reference: str | None = None) -> Payment | None:
        conditions = [Payment.gateway_tracking_id == tracking_id]
        if merchant_reference:
            conditions.append(Payment.merchant_reference == merchant_reference)
        stmt = (
            select(Payment)
            .where(or_(*conditions))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def apply_gateway_status(
        self, payment: Payment, status: TransactionStatus, now: datetime | None = None
    ) -> Booking:
        """Single transition point for gateway-reported payment state."""
        now = now or utcnow()
        outcome = status.payment_status

        if status.amount is not None and status.amount != payment.amount:
            logger.warning(
                "Gateway amount differs from payment amount",
                extra={
                    "payment_id": str(payment.id),
                    "expected": payment.amount,
                    "reported": status.amount,
                }
            )

        metrics_collector.record_payment_notification(outcome.value)

        if outcome == PaymentStatus.COMPLETED:
            return await self.booking_service.confirm_payment(
                payment, now, confirmation_code=status.confirmation_code, method=status.method
            )
        if outcome == PaymentStatus.FAILED:
            return await self.booking_service.mark_payment_failed(payment, status.description, now)
        if outcome == PaymentStatus.REFUNDED:
            return await self.booking_service.apply_reversal(payment, now)

        logger.info(
            "Payment still pending at gateway",
            extra={"payment_id": str(payment.id), "description": status.description}
        )
        return await self.booking_service.get_booking_by_id_or_raise(payment.booking_id)

    async def handle_notification(
        self, notification: PaymentNotification, now: datetime | None = None
    ) -> PaymentNotificationAck:
        """
        Verify an instant payment notification with the gateway and apply it.

        Raises:
            NotFoundError: If no payment matches the notification
            PaymentGatewayError: If the gateway cannot confirm the status, so it retries
        """
        payment = await self.find_payment(notification.order_tracking_id, notification.order_merchant_reference)
        if payment is None:
            logger.warning(
                "Payment notification for unknown order",
                extra={
                    "tracking_id": notification.order_tracking_id,
                    "merchant_reference": notification.order_merchant_reference,
                }
            )
            raise NotFoundError(resource_type="payment", resource_id=notification.order_tracking_id)

        status = await self.gateway.get_transaction_status(
            payment.gateway_tracking_id or notification.order_tracking_id
        )
        await self.apply_gateway_status(payment, status, now)

        return PaymentNotificationAck(
            order_notification_type=notification.order_notification_type,
            order_tracking_id=notification.order_tracking_id,
            order_merchant_reference=notification.order_merchant_reference or payment.merchant_reference,
        )

    async def list_payments(self, booking_id: UUID) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at)
            .execution_options(populate_existing=True)
        )
        return list((await self.db.execute(stmt)).scalars())

    async def get_status(self, request: PaymentStatusRequest, now: datetime | None = None) -> PaymentStatusResponse:
        """
        Current payment state of a booking, optionally refreshed from the gateway.

        Gateway errors are reported in ``gateway_error`` and the stored state
        is returned.
        """
        booking = await self.booking_service.get_booking_by_id_or_raise(request.booking_id)
        refreshed = False
        gateway_error = None

        if request.refresh_from_gateway:
            open_payments = [
                p for p in await self.list_payments(booking.id)
                if p.status in OPEN_PAYMENT_STATUSES and p.gateway_tracking_id
            ]
            for payment in open_payments:
                try:
                    status = await self.gateway.get_transaction_status(payment.gateway_tracking_id)
                except PaymentGatewayError as e:
                    gateway_error = e.problem_details.get("detail")
                    logger.warning(
                        "Gateway status refresh failed - returning stored status",
                        extra={"booking_id": str(booking.id), "payment_id": str(payment.id)}
                    )
                    break
                await self.apply_gateway_status(payment, status, now)
                refreshed = True

        booking = await self.booking_service.get_booking_by_id_or_raise(booking.id)
        payments = await self.list_payments(booking.id)
        amount_paid = sum(p.amount for p in payments if p.status == PaymentStatus.COMPLETED)

        return PaymentStatusResponse(
            booking_id=booking.id,
            booking_status=booking.status,
            payment_status=booking.payment_status,
            total_amount=booking.total_amount,
            amount_paid=amount_paid,
            currency=booking.currency,
            payments=[PaymentSummary.model_validate(p) for p in payments],
            refreshed=refreshed,
            gateway_error=gateway_error,
        )
