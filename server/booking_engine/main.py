"""Application factory for the tour booking engine."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.database import close_db, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    validation_exception_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .integrations.pesapal import close_payment_gateway
from .routers import agent, availability, booking, checkout, health, metrics, payment, tour
from .workers.manager import worker_manager

setup_structured_logging()

# Plain stdlib loggers (uvicorn, sqlalchemy) share the configured level
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

# Order matters only for the generated docs
API_ROUTERS = (
    health.router,
    agent.router,
    tour.router,
    availability.router,
    checkout.router,
    booking.router,
    payment.router,
)


async def startup() -> None:
    setup_tracing()
    setup_metrics()
    instrument_sqlalchemy()

    await init_db()

    if settings.workers_enabled:
        await worker_manager.start_all()

    logger.info(
        "Booking engine started",
        extra={
            "environment": settings.environment,
            "workers": sorted(worker_manager.workers) if settings.workers_enabled else [],
        }
    )


async def shutdown() -> None:
    """Stop workers before closing the pools they draw from."""
    await worker_manager.stop_all()
    await close_payment_gateway()
    await close_db()
    logger.info("Booking engine stopped")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        await startup()
    except Exception:
        logger.exception("Booking engine failed to start")
        raise

    yield

    try:
        await shutdown()
    except Exception:
        logger.exception("Error while stopping the booking engine")


def create_app() -> FastAPI:
    """
    Build the FastAPI application.

    Tests call this directly and override ``get_db`` and
    ``get_payment_gateway`` on the returned app.
    """
    app = FastAPI(
        title="Tour Booking Engine",
        description=(
            "RPC-over-HTTP API for tour availability, time-boxed checkout holds, "
            "pricing, booking lifecycle and payment reconciliation"
        ),
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )
    setup_middleware(app, enable_logging=True)
    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health.probe_router)
    for router in API_ROUTERS:
        app.include_router(router)
    app.include_router(metrics.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "booking_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
