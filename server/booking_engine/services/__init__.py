"""Service layer package."""

from .availability_service import AvailabilityService
from .booking_service import BookingService
from .capacity_service import CapacityService
from .hold_service import HoldService
from .idempotency_service import IdempotencyService
from .notification_service import NotificationService
from .payment_service import PaymentService
from .quote_service import QuoteService
from .tour_service import TourService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "CapacityService",
    "HoldService",
    "IdempotencyService",
    "NotificationService",
    "PaymentService",
    "QuoteService",
    "TourService",
]
