"""Models module exporting all database models."""

from .agent import Agent, AgentEarning, EarningType
from .availability import AvailabilityType, TourAvailabilityEntry
from .booking import Booking, BookingStatus, Hold, HoldStatus, PaymentStatus
from .idempotency import IdempotencyRecord
from .payment import Payment, PaymentMethod
from .tour import AccommodationOption, AccommodationTier, ActivityAddon, AddonPriceType, PricingConfig, Tour, TourStatus

__all__ = [
    # Catalog entities
    "Agent",
    "Tour",
    "TourStatus",
    "PricingConfig",
    "AccommodationOption",
    "AccommodationTier",
    "ActivityAddon",
    "AddonPriceType",
    "TourAvailabilityEntry",
    "AvailabilityType",

    # Booking entities
    "Hold",
    "HoldStatus",
    "Booking",
    "BookingStatus",

    # Money
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "AgentEarning",
    "EarningType",

    # Idempotency entity
    "IdempotencyRecord",
]
