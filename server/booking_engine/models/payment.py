"""Payment model definition."""

import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .booking import PaymentStatus
from .mixins import IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .booking import Booking


class PaymentMethod(str, Enum):
    MPESA = "MPESA"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    PAYPAL = "PAYPAL"
    UNKNOWN = "UNKNOWN"


class Payment(IdMixin, TimestampMixin, Base):
    """
    A charge attempt at the payment gateway.

    Payments are the source of truth for money received; the booking's
    ``payment_status`` is derived from them.
    """

    __tablename__ = "payments"

    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False, default=PaymentMethod.UNKNOWN)

    # Gateway references
    merchant_reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    gateway_tracking_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True, index=True)
    confirmation_code: Mapped[str | None] = mapped_column(String(128), nullable=True)

    status: Mapped[PaymentStatus] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING, index=True
    )
    status_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, "
            f"status={self.status}, tracking_id={self.gateway_tracking_id})>"
        )
