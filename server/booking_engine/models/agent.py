"""Agent and agent earnings model definitions."""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .mixins import IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .tour import Tour


class EarningType(str, Enum):
    """Kinds of ledger entries credited to an agent."""
    BOOKING = "BOOKING"
    REFUND_ADJUSTMENT = "REFUND_ADJUSTMENT"


class Agent(IdMixin, TimestampMixin, Base):
    """Tour operator that owns tours and receives earnings."""

    __tablename__ = "agents"

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    # Platform commission, percent of the booking total
    commission_rate: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)

    __table_args__ = (
        CheckConstraint("commission_rate >= 0 AND commission_rate <= 50", name="ck_agent_commission_range"),
    )

    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="agent")

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, business_name='{self.business_name}')>"


class AgentEarning(IdMixin, TimestampMixin, Base):
    """
    Ledger entry for an agent.

    One BOOKING credit and at most one REFUND_ADJUSTMENT debit exist per
    booking; the unique constraint backs the skip-if-exists checks.
    """

    __tablename__ = "agent_earnings"

    agent_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    type: Mapped[EarningType] = mapped_column(String(32), nullable=False, default=EarningType.BOOKING)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "type", name="uq_agent_earning_booking_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<AgentEarning(id={self.id}, booking_id={self.booking_id}, "
            f"type={self.type}, amount={self.amount})>"
        )
