"""Tour router for tour and pricing setup used by the catalog."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.tour import CreateTourRequest, GetTourRequest, PricingConfig, Tour, UpsertPricingConfigRequest
from ..services.tour_service import TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/tour", tags=["tour"])


@router.post("/create", response_model=Tour)
async def create_tour(
    request: CreateTourRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Create a new tour with its accommodation options and add-ons.

    This operation is idempotent based on the tour slug.
    """
    tour_service = TourService(db)

    try:
        # Same slug and title is treated as a retry of the same creation
        existing_tour = await tour_service.get_tour_by_slug(request.slug)
        if existing_tour and existing_tour.title == request.title and existing_tour.agent_id == request.agent_id:
            logger.info(
                "Tour creation - returning existing tour (idempotent)",
                extra={
                    "tour_id": str(existing_tour.id),
                    "slug": request.slug
                }
            )
            tour = await tour_service.get_tour_with_catalog(existing_tour.id)
        else:
            tour = await tour_service.create_tour(request)

        response_data = Tour.model_validate(tour)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception:
        logger.error(
            "Unexpected error in tour creation",
            extra={"slug": request.slug},
            exc_info=True
        )
        raise


@router.post("/get", response_model=Tour)
async def get_tour(
    request: GetTourRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Tour with its accommodation options and add-ons."""
    tour_service = TourService(db)
    tour = await tour_service.get_tour_with_catalog(request.tour_id)

    return JSONResponse(
        status_code=200,
        content=Tour.model_validate(tour).model_dump(mode="json")
    )


@router.post("/pricing", response_model=PricingConfig)
async def upsert_pricing_config(
    request: UpsertPricingConfigRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Create or replace the tour's pricing rules."""
    tour_service = TourService(db)
    config = await tour_service.upsert_pricing_config(request)

    return JSONResponse(
        status_code=200,
        content=PricingConfig.model_validate(config).model_dump(mode="json")
    )
