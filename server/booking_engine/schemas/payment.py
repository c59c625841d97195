"""Payment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .booking import BookingStatus, PaymentStatus
from .common import RequestModel


class InitiatePaymentRequest(RequestModel):
    """Request schema for starting a gateway payment for a booking."""

    booking_id: UUID
    pay_deposit: bool = Field(False, description="Charge the deposit instead of the full balance")


class InitiatePaymentResponse(BaseModel):
    payment_id: UUID
    booking_id: UUID
    amount: int
    currency: str
    merchant_reference: str
    tracking_id: str
    redirect_url: str
    status: PaymentStatus


class PaymentNotification(BaseModel):
    """Instant payment notification body as sent by the gateway."""

    model_config = ConfigDict(populate_by_name=True)

    order_tracking_id: str = Field(..., alias="OrderTrackingId", min_length=1)
    order_merchant_reference: str | None = Field(None, alias="OrderMerchantReference")
    order_notification_type: str = Field("IPNCHANGE", alias="OrderNotificationType")


class PaymentNotificationAck(BaseModel):
    """Acknowledgement shape the gateway expects back."""

    model_config = ConfigDict(populate_by_name=True)

    order_notification_type: str = Field(..., serialization_alias="orderNotificationType")
    order_tracking_id: str = Field(..., serialization_alias="orderTrackingId")
    order_merchant_reference: str | None = Field(None, serialization_alias="orderMerchantReference")
    status: int = 200


class PaymentStatusRequest(RequestModel):
    booking_id: UUID
    refresh_from_gateway: bool = Field(True, description="Ask the gateway before answering")


class PaymentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: int
    currency: str
    method: str
    status: PaymentStatus
    merchant_reference: str
    gateway_tracking_id: str | None = None
    confirmation_code: str | None = None
    completed_at: datetime | None = None


class PaymentStatusResponse(BaseModel):
    booking_id: UUID
    booking_status: BookingStatus
    payment_status: PaymentStatus
    total_amount: int
    amount_paid: int
    currency: str
    payments: list[PaymentSummary]
    refreshed: bool = Field(False, description="Whether the gateway was consulted")
    gateway_error: str | None = None
