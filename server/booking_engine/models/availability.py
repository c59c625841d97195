"""Per-date availability overrides set by agents."""

import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .mixins import IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .tour import Tour


class AvailabilityType(str, Enum):
    """Override kind for a single tour date."""
    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"
    LIMITED = "LIMITED"


class TourAvailabilityEntry(IdMixin, TimestampMixin, Base):
    """
    Capacity override for one tour on one date.

    No entry means the tour's ``max_group_size`` applies.
    """

    __tablename__ = "tour_availability"

    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    type: Mapped[AvailabilityType] = mapped_column(String(20), nullable=False, default=AvailabilityType.AVAILABLE)
    spots_available: Mapped[int | None] = mapped_column(Integer, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("tour_id", "date", name="uq_tour_availability_tour_date"),
        CheckConstraint(
            "spots_available IS NULL OR spots_available >= 0",
            name="ck_tour_availability_spots_non_negative",
        ),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="availability")

    def __repr__(self) -> str:
        return (
            f"<TourAvailabilityEntry(tour_id={self.tour_id}, date={self.date}, "
            f"type={self.type}, spots_available={self.spots_available})>"
        )
