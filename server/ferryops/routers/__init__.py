"""FastAPI routers package."""

from .booking import router as booking_router
from .departure import router as departure_router
from .ferry import router as ferry_router
from .health import router as health_router
from .metrics import router as metrics_router
from .route import router as route_router
from .schedule import router as schedule_router
from .traveling_entity import router as traveling_entity_router

__all__ = [
    "booking_router",
    "departure_router",
    "ferry_router",
    "health_router",
    "metrics_router",
    "route_router",
    "schedule_router",
    "traveling_entity_router",
]
