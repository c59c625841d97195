"""Tour catalog Pydantic schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import RequestModel


class TourStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class AccommodationTier(str, Enum):
    BUDGET = "BUDGET"
    MID_RANGE = "MID_RANGE"
    LUXURY = "LUXURY"


class AddonPriceType(str, Enum):
    PER_PERSON = "PER_PERSON"
    PER_GROUP = "PER_GROUP"
    FLAT = "FLAT"


class CreateAgentRequest(RequestModel):
    """Request schema for registering a tour operator."""

    business_name: str = Field(..., min_length=1, max_length=255)
    business_email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    commission_rate: float = Field(10.0, ge=0, le=50, description="Platform commission percent")


class Agent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_name: str
    business_email: str
    commission_rate: float


class AccommodationOptionInput(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    tier: AccommodationTier = AccommodationTier.MID_RANGE
    price_per_night: int = Field(..., ge=0)


class ActivityAddonInput(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., ge=0)
    child_price: int | None = Field(None, ge=0)
    price_type: AddonPriceType = AddonPriceType.PER_PERSON


class CreateTourRequest(RequestModel):
    """Request schema for creating a tour."""

    agent_id: UUID
    title: str = Field(..., min_length=1, max_length=255, description="Tour title")
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    description: str | None = Field(None, max_length=5000)
    status: TourStatus = TourStatus.DRAFT
    max_group_size: int = Field(..., ge=1, le=500)
    duration_days: int = Field(1, ge=1, le=60)
    duration_nights: int = Field(0, ge=0, le=60)
    base_price: int = Field(..., ge=0, description="Adult price in minor units")
    child_price: int | None = Field(None, ge=0, description="Overrides the child discount when set")
    infant_price: int = Field(0, ge=0)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    deposit_enabled: bool = False
    deposit_percentage: float = Field(30.0, gt=0, le=100)
    free_cancellation_days: int = Field(14, ge=0, le=365)
    accommodation_options: list[AccommodationOptionInput] = Field(default_factory=list)
    activity_addons: list[ActivityAddonInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_duration(self) -> "CreateTourRequest":
        if self.duration_nights > self.duration_days:
            raise ValueError("duration_nights cannot exceed duration_days")
        return self


class AccommodationOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    tier: AccommodationTier
    price_per_night: int


class ActivityAddon(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    price: int
    child_price: int | None = None
    price_type: AddonPriceType


class Tour(BaseModel):
    """Tour response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique tour ID")
    agent_id: UUID
    title: str
    slug: str
    description: str | None = None
    status: TourStatus
    max_group_size: int
    duration_days: int
    duration_nights: int
    base_price: int
    child_price: int | None = None
    infant_price: int
    currency: str
    deposit_enabled: bool
    deposit_percentage: float
    free_cancellation_days: int
    accommodation_options: list[AccommodationOption] = Field(default_factory=list)
    activity_addons: list[ActivityAddon] = Field(default_factory=list)


class GetTourRequest(RequestModel):
    tour_id: UUID


class UpsertPricingConfigRequest(RequestModel):
    """Per-tour pricing rules; omitted optional rules are disabled."""

    tour_id: UUID
    child_discount_percent: float = Field(30.0, ge=0, le=100)
    child_min_age: int = Field(3, ge=0, le=17)
    child_max_age: int = Field(11, ge=0, le=17)
    infant_max_age: int = Field(2, ge=0, le=5)
    infant_price: int | None = Field(None, ge=0)
    service_fee_percent: float = Field(5.0, ge=0, le=100)
    service_fee_fixed: int | None = Field(None, ge=0)
    deposit_percent: float | None = Field(None, gt=0, le=100)
    deposit_minimum: int | None = Field(None, ge=0)
    group_discount_threshold: int | None = Field(None, ge=2)
    group_discount_percent: float | None = Field(None, gt=0, le=100)
    early_bird_days: int | None = Field(None, ge=1)
    early_bird_percent: float | None = Field(None, gt=0, le=100)

    @model_validator(mode="after")
    def check_rules(self) -> "UpsertPricingConfigRequest":
        if self.child_min_age != self.infant_max_age + 1:
            raise ValueError("child band must start the year after the infant band")
        if self.child_min_age > self.child_max_age:
            raise ValueError("child_min_age cannot exceed child_max_age")
        if (self.group_discount_threshold is None) != (self.group_discount_percent is None):
            raise ValueError("group discount needs both threshold and percent")
        if (self.early_bird_days is None) != (self.early_bird_percent is None):
            raise ValueError("early-bird discount needs both days and percent")
        return self


class PricingConfig(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tour_id: UUID
    child_discount_percent: float
    child_min_age: int
    child_max_age: int
    infant_max_age: int
    infant_price: int | None = None
    service_fee_percent: float
    service_fee_fixed: int | None = None
    deposit_percent: float | None = None
    deposit_minimum: int | None = None
    group_discount_threshold: int | None = None
    group_discount_percent: float | None = None
    early_bird_days: int | None = None
    early_bird_percent: float | None = None
