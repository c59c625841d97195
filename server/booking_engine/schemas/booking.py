"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import RequestModel


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class ContactDetails(RequestModel):
    """Lead traveller contact details."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str | None = Field(None, max_length=64)


class ReserveBookingRequest(RequestModel):
    """Request schema for turning a hold into a pay-later booking."""

    hold_id: UUID = Field(..., description="Active hold to reserve")
    contact: ContactDetails
    special_requests: str | None = Field(None, max_length=2000)


class CancelBookingRequest(RequestModel):
    """Request schema for cancelling a booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    reason: str | None = Field(None, max_length=1000)


class GetBookingRequest(RequestModel):
    """Request schema for getting a booking."""

    booking_id: UUID = Field(..., description="Booking to retrieve")


class CompleteBookingRequest(RequestModel):
    """Request schema for marking a trip as completed."""

    booking_id: UUID = Field(..., description="Booking to complete")


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique booking ID")
    reference: str = Field(..., description="Human-readable booking reference")
    hold_id: UUID | None = None
    tour_id: UUID
    agent_id: UUID
    user_id: str | None = None
    contact_name: str
    contact_email: str
    contact_phone: str | None = None
    start_date: date
    end_date: date
    adults: int
    children: int
    infants: int
    currency: str
    base_amount: int
    accommodation_amount: int
    activities_amount: int
    tax_amount: int
    discount_amount: int
    total_amount: int
    deposit_amount: int
    status: BookingStatus
    payment_status: PaymentStatus
    payment_due_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    refund_amount: int | None = None
    created_at: datetime


class CancellationResult(BaseModel):
    """Refund-tier outcome of a cancellation."""

    booking_id: UUID
    status: BookingStatus
    payment_status: PaymentStatus
    refund_amount: int = Field(..., ge=0)
    refund_percentage: int = Field(..., ge=0, le=100)
    days_until_start: int
    free_cancellation_days: int
    total_paid: int = Field(..., ge=0)
    currency: str
