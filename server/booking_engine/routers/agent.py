"""Agent router: register tour operators."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.tour import Agent, CreateAgentRequest
from ..services.tour_service import TourService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/agent", tags=["agent"])


@router.post("/create", response_model=Agent, status_code=201)
async def create_agent(
    request: CreateAgentRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Register a tour operator and its commission rate."""
    tour_service = TourService(db)
    agent = await tour_service.create_agent(request)

    return JSONResponse(
        status_code=201,
        content=Agent.model_validate(agent).model_dump(mode="json")
    )
