"""Availability router: calendar views and agent date overrides."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    AvailabilityEntry,
    CalendarRequest,
    CalendarResponse,
    ClearAvailabilityRequest,
    ClearAvailabilityResponse,
    SetAvailabilityRequest,
    SetAvailabilityResponse,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


@router.post("/calendar", response_model=CalendarResponse)
async def get_calendar(
    request: CalendarRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Per-day availability for a party size over a date window."""
    availability_service = AvailabilityService(db)
    response_data = await availability_service.get_calendar(request)

    logger.debug(
        "Calendar requested",
        extra={
            "tour_id": str(request.tour_id),
            "date_from": request.date_from.isoformat(),
            "date_to": request.date_to.isoformat(),
            "available_days": response_data.summary.available_days,
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/check", response_model=AvailabilityCheckResponse)
async def check_availability(
    request: AvailabilityCheckRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Read-only check whether a party fits a start date; nothing is held."""
    availability_service = AvailabilityService(db)
    response_data = await availability_service.check(request)

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/set", response_model=SetAvailabilityResponse)
async def set_availability(
    request: SetAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Mark dates AVAILABLE, BLOCKED or LIMITED."""
    availability_service = AvailabilityService(db)
    entries = await availability_service.set_entries(request)

    response_data = SetAvailabilityResponse(
        tour_id=request.tour_id,
        entries=[AvailabilityEntry.model_validate(entry) for entry in entries],
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/clear", response_model=ClearAvailabilityResponse)
async def clear_availability(
    request: ClearAvailabilityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Remove date overrides so the tour's max group size applies again."""
    availability_service = AvailabilityService(db)
    cleared = await availability_service.clear_entries(request)

    return JSONResponse(
        status_code=200,
        content=ClearAvailabilityResponse(tour_id=request.tour_id, cleared=cleared).model_dump(mode="json")
    )
