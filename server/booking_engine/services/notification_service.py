"""Notification requests emitted by the booking lifecycle."""

import logging
from typing import Any, Protocol

from ..models.booking import Booking

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, event: str, recipient: str, payload: dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the request in the application log."""

    async def send(self, event: str, recipient: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification requested",
            extra={"event": event, "recipient": recipient, **payload}
        )


class NotificationService:
    """
    Fire-and-forget notification requests.

    Delivery failures are logged and swallowed; a failed email never fails
    the booking operation that asked for it.
    """

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or LoggingNotifier()

    async def _request(self, event: str, booking: Booking, **payload: Any) -> bool:
        try:
            await self.notifier.send(
                event,
                booking.contact_email,
                {"booking_id": str(booking.id), "booking_reference": booking.reference, **payload},
            )
            return True
        except Exception as e:
            logger.warning(
                "Notification request failed",
                extra={"event": event, "booking_id": str(booking.id), "error": str(e)}
            )
            return False

    async def reservation_created(self, booking: Booking) -> bool:
        return await self._request(
            "booking.reserved",
            booking,
            total_amount=booking.total_amount,
            currency=booking.currency,
            payment_due_at=booking.payment_due_at.isoformat() if booking.payment_due_at else None,
        )

    async def booking_confirmed(self, booking: Booking) -> bool:
        return await self._request("booking.confirmed", booking, start_date=booking.start_date.isoformat())

    async def booking_cancelled(self, booking: Booking) -> bool:
        return await self._request(
            "booking.cancelled",
            booking,
            refund_amount=booking.refund_amount or 0,
            reason=booking.cancellation_reason,
        )
