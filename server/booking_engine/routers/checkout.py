"""Checkout router: quote a party and hold its spots."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_idempotency_key, get_optional_user
from ..schemas.checkout import (
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    Hold,
    HoldAction,
    HoldActionRequest,
    HoldActionResponse,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.hold_service import HoldService
from .idempotent import handle_idempotent_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/checkout", tags=["checkout"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_optional_user)
IDEMPOTENCY_KEY_DEPENDENCY = Depends(get_idempotency_key)


@router.post("/session", response_model=CheckoutSessionResponse, status_code=201)
async def create_checkout_session(
    request: CreateCheckoutSessionRequest,
    db: AsyncSession = DB_DEPENDENCY,
    user: Optional[dict] = USER_DEPENDENCY,
    idempotency_key: Optional[str] = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Price a party for a tour date and hold the spots for 15 minutes.

    Retries with the same Idempotency-Key replay the first response.
    """
    hold_service = HoldService(db)
    user_id = user["user_id"] if user else None

    async def operation() -> CheckoutSessionResponse:
        hold, breakdown = await hold_service.create_hold(request, user_id=user_id)
        return CheckoutSessionResponse(
            hold_id=hold.id,
            expires_at=hold.expires_at,
            hold=Hold.model_validate(hold),
            price_breakdown=breakdown,
        )

    return await handle_idempotent_operation(
        method="checkout/session",
        idempotency_key=idempotency_key,
        request=request,
        operation_func=operation,
        db=db,
        status_code=201,
    )


@router.post("/hold", response_model=HoldActionResponse)
async def update_hold(
    request: HoldActionRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Extend a live hold by another 15 minutes, or release it."""
    hold_service = HoldService(db)

    if request.action == HoldAction.EXTEND:
        hold = await hold_service.extend_hold(request.hold_id)
    else:
        hold = await hold_service.release_hold(request.hold_id)

    response_data = HoldActionResponse(
        hold_id=hold.id,
        action=request.action,
        status=hold.status,
        expires_at=hold.expires_at,
    )

    logger.info(
        "Hold updated",
        extra={
            "hold_id": str(request.hold_id),
            "action": request.action.value,
            "status": hold.status,
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
