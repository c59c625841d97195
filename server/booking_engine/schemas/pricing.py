"""Pricing-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class PriceBreakdown(BaseModel):
    """
    Itemized price for a party on a tour date, in minor units.

    ``discount_amount`` is the sum of the group and early-bird discounts, both
    taken against the same ``subtotal``. ``tax_amount`` is the service fee.
    """

    model_config = ConfigDict(frozen=True)

    currency: str = Field(..., min_length=3, max_length=3)
    adult_amount: int = Field(..., ge=0)
    child_amount: int = Field(..., ge=0)
    infant_amount: int = Field(..., ge=0)
    base_amount: int = Field(..., ge=0, description="Adults + children + infants")
    accommodation_amount: int = Field(..., ge=0)
    activities_amount: int = Field(..., ge=0)
    subtotal: int = Field(..., ge=0)
    group_discount_amount: int = Field(..., ge=0)
    early_bird_discount_amount: int = Field(..., ge=0)
    discount_amount: int = Field(..., ge=0)
    tax_amount: int = Field(..., ge=0, description="Service fee")
    total_amount: int = Field(..., ge=0)
    deposit_amount: int = Field(..., ge=0)
    balance_amount: int = Field(..., ge=0)
