"""FastAPI routers package."""

from .agent import router as agent_router
from .availability import router as availability_router
from .booking import router as booking_router
from .checkout import router as checkout_router
from .health import router as health_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .tour import router as tour_router

__all__ = [
    "agent_router",
    "availability_router",
    "booking_router",
    "checkout_router",
    "health_router",
    "metrics_router",
    "payment_router",
    "tour_router",
]
