"""Booking router for booking lifecycle operations."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_idempotency_key, get_optional_user
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    Booking,
    CancelBookingRequest,
    CancellationResult,
    CompleteBookingRequest,
    GetBookingRequest,
    ReserveBookingRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.booking_service import BookingService
from .idempotent import handle_idempotent_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_optional_user)
IDEMPOTENCY_KEY_DEPENDENCY = Depends(get_idempotency_key)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking.model_validate(booking_model)


@router.post("/reserve", response_model=Booking, status_code=201)
async def reserve_booking(
    request: ReserveBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: Optional[dict] = USER_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Turn an active hold into a PENDING booking with a payment due date.

    Reserving the same hold twice returns the original booking.
    """
    booking_service = BookingService(db)

    async def operation() -> Booking:
        booking = await booking_service.reserve(request, user_id=user["user_id"] if user else None)
        return _convert_booking_to_schema(booking)

    try:
        return await handle_idempotent_operation(
            method="booking/reserve",
            idempotency_key=idempotency_key,
            request=request,
            operation_func=operation,
            db=db,
            status_code=201,
        )

    except ProblemDetailsException:
        raise

    except Exception:
        logger.error(
            "Unexpected error in booking reservation",
            extra={
                "hold_id": str(request.hold_id),
                "idempotency_key": idempotency_key
            },
            exc_info=True
        )
        raise


@router.post("/cancel", response_model=CancellationResult)
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking and report the refund owed under the cancellation policy.

    This operation is idempotent based on the Idempotency-Key header.
    """
    booking_service = BookingService(db)

    async def operation() -> CancellationResult:
        return await booking_service.cancel(request)

    try:
        return await handle_idempotent_operation(
            method="booking/cancel",
            idempotency_key=idempotency_key,
            request=request,
            operation_func=operation,
            db=db
        )

    except ProblemDetailsException:
        raise

    except Exception:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={
                "booking_id": str(request.booking_id),
                "idempotency_key": idempotency_key
            },
            exc_info=True
        )
        raise


@router.post("/complete", response_model=Booking)
async def complete_booking(
    request: CompleteBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Mark a confirmed booking as completed after the trip."""
    booking_service = BookingService(db)

    booking = await booking_service.complete(request.booking_id)

    return JSONResponse(
        status_code=200,
        content=_convert_booking_to_schema(booking).model_dump(mode="json")
    )


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get booking details.

    This is a read operation and does not require idempotency.
    """
    booking_service = BookingService(db)

    booking = await booking_service.get_booking(request.booking_id)
    response_data = _convert_booking_to_schema(booking)

    logger.info(
        "Booking retrieved successfully",
        extra={
            "booking_id": str(request.booking_id),
            "booking_reference": booking.reference
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
