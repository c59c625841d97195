"""Booking and Hold model definitions."""

import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .mixins import IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .payment import Payment


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    """Payment status enumeration, also projected onto bookings."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


# Bookings in these states no longer occupy capacity
RELEASED_BOOKING_STATUSES = (BookingStatus.CANCELLED, BookingStatus.REFUNDED)


class Hold(IdMixin, TimestampMixin, Base):
    """
    Time-boxed capacity reservation taken while a buyer checks out.

    A hold only counts toward occupancy while ``status`` is ACTIVE *and*
    ``expires_at`` is in the future; the stored status is not trusted on its
    own. Holds are never deleted.
    """

    __tablename__ = "holds"

    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    # Date range, inclusive on both ends
    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)

    # Party composition
    adults: Mapped[int] = mapped_column(Integer, nullable=False)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    infants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spots_held: Mapped[int] = mapped_column(Integer, nullable=False)

    # Checkout selections
    selected_accommodation_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    selected_addon_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quoted_on: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    quoted_total: Mapped[int] = mapped_column(Integer, nullable=False)
    # Full breakdown shown to the buyer; the booking is built from it
    price_breakdown: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[HoldStatus] = mapped_column(
        String(20),
        nullable=False,
        default=HoldStatus.ACTIVE,
        index=True
    )

    __table_args__ = (
        CheckConstraint("spots_held > 0", name="ck_hold_spots_positive"),
        CheckConstraint("adults >= 1", name="ck_hold_adults_positive"),
        CheckConstraint("end_date >= start_date", name="ck_hold_date_range"),
    )

    booking: Mapped["Booking | None"] = relationship("Booking", back_populates="hold", uselist=False)

    def is_live(self, now: datetime.datetime) -> bool:
        """True while the hold still reserves capacity."""
        return self.status == HoldStatus.ACTIVE and self.expires_at > now

    def __repr__(self) -> str:
        return (
            f"<Hold(id={self.id}, tour_id={self.tour_id}, start_date={self.start_date}, "
            f"spots_held={self.spots_held}, status={self.status}, expires_at={self.expires_at})>"
        )


class Booking(IdMixin, TimestampMixin, Base):
    """Durable record of a purchase. Never deleted."""

    __tablename__ = "bookings"

    reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    hold_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("holds.id", ondelete="SET NULL"),
        nullable=True,
        unique=True
    )
    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Denormalized owner of the tour
    agent_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Buyer identity
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    adults: Mapped[int] = mapped_column(Integer, nullable=False)
    children: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    infants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    selected_accommodation_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    selected_addon_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Amounts, minor units
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    base_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    accommodation_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activities_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_commission: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    agent_earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    # Projection of Payment rows, never written directly by callers
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING
    )
    payment_due_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    # Cancellation metadata
    cancelled_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("adults >= 1", name="ck_booking_adults_positive"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("end_date >= start_date", name="ck_booking_date_range"),
        CheckConstraint("length(reference) > 0", name="ck_booking_reference_not_empty"),
    )

    hold: Mapped["Hold | None"] = relationship("Hold", back_populates="booking")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="booking")

    @property
    def party_size(self) -> int:
        return self.adults + self.children + self.infants

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, reference='{self.reference}', status={self.status}, "
            f"payment_status={self.payment_status}, total_amount={self.total_amount})>"
        )
