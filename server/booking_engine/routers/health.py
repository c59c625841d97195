"""Health check router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import async_session_factory, get_db, utcnow
from ..schemas.health import HealthResponse, HealthStatus
from ..workers.manager import worker_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


async def check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return "unavailable"


@router.post("/ping", response_model=HealthResponse)
async def health_ping(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status, timestamp and database connectivity.
    """
    database = await check_database(db)
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if database == "ok" else HealthStatus.DEGRADED,
        timestamp=utcnow(),
        version=settings.app_version,
        database=database,
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status,
            "timestamp": response_data.timestamp.isoformat()
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


# Unversioned probes for load balancers and orchestrators
probe_router = APIRouter(tags=["probes"])


@probe_router.get("/health", summary="Liveness probe")
async def liveness() -> dict:
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@probe_router.get("/ready", summary="Readiness probe")
async def readiness() -> dict:
    """Ready once the database answers; worker state is reported but not required."""
    async with async_session_factory() as db:
        database = await check_database(db)
    return {
        "status": "ready" if database == "ok" else "not_ready",
        "service": settings.service_name,
        "checks": {
            "database": database,
            "workers": worker_manager.get_worker_status(),
        },
    }


@probe_router.get("/info", summary="Service configuration summary")
async def service_info() -> dict:
    return {
        "service": settings.service_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "features": {
            "holds": True,
            "idempotency": True,
            "tracing": settings.otlp_endpoint is not None,
            "payment_gateway": "pesapal",
        },
        "settings": {
            "hold_ttl_minutes": settings.hold_ttl_minutes,
            "payment_due_days": settings.payment_due_days,
        },
        "endpoints": {
            "health": "/health",
            "readiness": "/ready",
            "metrics": "/metrics",
            "docs": "/docs" if settings.debug else None,
        },
    }
