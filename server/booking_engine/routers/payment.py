"""Payment router: gateway checkout, instant payment notifications and status polling."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..integrations.pesapal import PaymentGateway, get_payment_gateway
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.payment import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentNotification,
    PaymentNotificationAck,
    PaymentStatusRequest,
    PaymentStatusResponse,
)
from ..services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
GATEWAY_DEPENDENCY = Depends(get_payment_gateway)


@router.post("/initiate", response_model=InitiatePaymentResponse)
async def initiate_payment(
    request: InitiatePaymentRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY
) -> JSONResponse:
    """Submit the outstanding amount (or the deposit) to the gateway and return its checkout URL."""
    payment_service = PaymentService(db, gateway)
    response_data = await payment_service.initiate(request)

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/notification", response_model=PaymentNotificationAck)
async def payment_notification(
    notification: PaymentNotification,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY
) -> JSONResponse:
    """
    Gateway webhook.

    The reported status is always re-read from the gateway before it is
    applied. A 502 tells the gateway to retry later.
    """
    logger.info(
        "Payment notification received",
        extra={
            "tracking_id": notification.order_tracking_id,
            "merchant_reference": notification.order_merchant_reference,
            "notification_type": notification.order_notification_type,
        }
    )

    payment_service = PaymentService(db, gateway)
    ack = await payment_service.handle_notification(notification)

    return JSONResponse(
        status_code=200,
        content=ack.model_dump(mode="json", by_alias=True)
    )


@router.post("/status", response_model=PaymentStatusResponse)
async def payment_status(
    request: PaymentStatusRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY
) -> JSONResponse:
    """Current payment state of a booking; falls back to stored state if the gateway is down."""
    payment_service = PaymentService(db, gateway)
    response_data = await payment_service.get_status(request)

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
