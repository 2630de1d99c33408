"""Service layer package."""

from .booking_service import BookingService, OverBookedError
from .cascade_service import CascadeService
from .departure_service import DepartureService
from .ferry_service import CapacityBelowBookedError, FerryRetiredError, FerryService
from .route_service import RouteService
from .schedule_service import ScheduleService
from .traveling_entity_service import TravelingEntityService

__all__ = [
    "BookingService",
    "CapacityBelowBookedError",
    "CascadeService",
    "DepartureService",
    "FerryRetiredError",
    "FerryService",
    "OverBookedError",
    "RouteService",
    "ScheduleService",
    "TravelingEntityService",
]
