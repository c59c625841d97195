"""Checkout (quote and hold) Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import RequestModel
from .pricing import PriceBreakdown


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


class HoldAction(str, Enum):
    EXTEND = "extend"
    RELEASE = "release"


class CreateCheckoutSessionRequest(RequestModel):
    """
    Request schema for quoting a party and holding capacity.

    When ``traveler_ages`` is given the party is classified from the tour's
    age bands and the explicit counts are ignored.
    """

    tour_id: UUID = Field(..., description="Tour to book")
    start_date: date = Field(..., description="First day of the tour")
    adults: int = Field(1, ge=0, le=100)
    children: int = Field(0, ge=0, le=100)
    infants: int = Field(0, ge=0, le=100)
    traveler_ages: list[int] | None = Field(None, min_length=1, max_length=100)
    selected_accommodation_ids: list[UUID] = Field(
        default_factory=list,
        max_length=60,
        description="One accommodation option per night of the itinerary"
    )
    selected_addon_ids: list[UUID] = Field(default_factory=list, max_length=50)

    @model_validator(mode="after")
    def check_party(self) -> "CreateCheckoutSessionRequest":
        if self.traveler_ages is not None:
            if any(age < 0 or age > 120 for age in self.traveler_ages):
                raise ValueError("traveler ages must be between 0 and 120")
        elif self.adults < 1:
            raise ValueError("at least one adult is required")
        return self


class HoldActionRequest(RequestModel):
    """Request schema for extending or releasing a hold."""

    hold_id: UUID = Field(..., description="Hold to act on")
    action: HoldAction = Field(..., description="extend or release")


class Hold(BaseModel):
    """Hold response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique hold ID")
    tour_id: UUID
    start_date: date
    end_date: date
    adults: int
    children: int
    infants: int
    spots_held: int = Field(..., ge=1)
    status: HoldStatus
    expires_at: datetime = Field(..., description="Hold expiration time (UTC)")


class CheckoutSessionResponse(BaseModel):
    """Response schema for a new checkout session."""

    hold_id: UUID
    expires_at: datetime
    hold: Hold
    price_breakdown: PriceBreakdown


class HoldActionResponse(BaseModel):
    """Response schema for hold extend/release."""

    hold_id: UUID
    action: HoldAction
    status: HoldStatus
    expires_at: datetime
