"""Tour catalog model definitions: tours, pricing rules and add-ons."""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base
from .mixins import IdMixin, TimestampMixin

if TYPE_CHECKING:
    from .agent import Agent
    from .availability import TourAvailabilityEntry


class TourStatus(str, Enum):
    """Tour publication status."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class AccommodationTier(str, Enum):
    BUDGET = "BUDGET"
    MID_RANGE = "MID_RANGE"
    LUXURY = "LUXURY"


class AddonPriceType(str, Enum):
    """How an activity add-on is charged."""
    PER_PERSON = "PER_PERSON"
    PER_GROUP = "PER_GROUP"
    FLAT = "FLAT"


class Tour(IdMixin, TimestampMixin, Base):
    """Tour entity representing a bookable tour offering."""

    __tablename__ = "tours"

    agent_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Tour information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TourStatus] = mapped_column(String(20), nullable=False, default=TourStatus.DRAFT, index=True)

    # Capacity and duration
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    duration_nights: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Pricing, minor units
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    child_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    infant_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Deposit and cancellation policy
    deposit_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    free_cancellation_days: Mapped[int] = mapped_column(Integer, nullable=False, default=14)

    __table_args__ = (
        CheckConstraint("max_group_size > 0", name="ck_tour_max_group_size_positive"),
        CheckConstraint("base_price >= 0", name="ck_tour_base_price_non_negative"),
        CheckConstraint("duration_nights >= 0", name="ck_tour_duration_nights_non_negative"),
        CheckConstraint("free_cancellation_days >= 0", name="ck_tour_free_cancellation_non_negative"),
    )

    # Relationships
    agent: Mapped["Agent"] = relationship("Agent", back_populates="tours")
    pricing_config: Mapped["PricingConfig | None"] = relationship(
        "PricingConfig", back_populates="tour", uselist=False, cascade="all, delete-orphan"
    )
    accommodation_options: Mapped[list["AccommodationOption"]] = relationship(
        "AccommodationOption", back_populates="tour", cascade="all, delete-orphan"
    )
    activity_addons: Mapped[list["ActivityAddon"]] = relationship(
        "ActivityAddon", back_populates="tour", cascade="all, delete-orphan"
    )
    availability: Mapped[list["TourAvailabilityEntry"]] = relationship(
        "TourAvailabilityEntry", back_populates="tour", cascade="all, delete-orphan"
    )

    @property
    def is_bookable(self) -> bool:
        return self.status == TourStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', slug='{self.slug}')>"


class PricingConfig(IdMixin, TimestampMixin, Base):
    """Per-tour pricing rules; unset fields fall back to platform defaults."""

    __tablename__ = "pricing_configs"

    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    child_discount_percent: Mapped[float] = mapped_column(Float, nullable=False, default=30.0)
    child_min_age: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    child_max_age: Mapped[int] = mapped_column(Integer, nullable=False, default=11)
    infant_max_age: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    infant_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    service_fee_percent: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    service_fee_fixed: Mapped[int | None] = mapped_column(Integer, nullable=True)

    deposit_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    deposit_minimum: Mapped[int | None] = mapped_column(Integer, nullable=True)

    group_discount_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_discount_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    early_bird_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    early_bird_percent: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        CheckConstraint("child_discount_percent BETWEEN 0 AND 100", name="ck_pricing_child_discount_range"),
        CheckConstraint("service_fee_percent BETWEEN 0 AND 100", name="ck_pricing_service_fee_range"),
        CheckConstraint("infant_max_age < child_max_age", name="ck_pricing_age_bands_ordered"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="pricing_config")


class AccommodationOption(IdMixin, TimestampMixin, Base):
    """Accommodation a buyer can select for a night of the itinerary."""

    __tablename__ = "accommodation_options"

    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    tier: Mapped[AccommodationTier] = mapped_column(String(20), nullable=False, default=AccommodationTier.MID_RANGE)
    price_per_night: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price_per_night >= 0", name="ck_accommodation_price_non_negative"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="accommodation_options")


class ActivityAddon(IdMixin, TimestampMixin, Base):
    """Optional activity sold alongside a tour."""

    __tablename__ = "activity_addons"

    tour_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    child_price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_type: Mapped[AddonPriceType] = mapped_column(String(20), nullable=False, default=AddonPriceType.PER_PERSON)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_addon_price_non_negative"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="activity_addons")
