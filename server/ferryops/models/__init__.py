"""Models module exporting all database models."""

from .booking import Booking, BookingStatus
from .capacity import CapacityAdjustment
from .departure import OPEN_STATUSES, TERMINAL_STATUSES, Departure, DepartureStatus
from .ferry import Ferry, FerryStatus
from .route import Harbour, Route
from .schedule import Schedule
from .traveling_entity import TravelingEntity, TravelingEntityKind

__all__ = [
    # Fleet
    "Ferry",
    "FerryStatus",
    "CapacityAdjustment",

    # Network
    "Harbour",
    "Route",

    # Timetable
    "Schedule",
    "Departure",
    "DepartureStatus",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",

    # Bookings
    "TravelingEntity",
    "TravelingEntityKind",
    "Booking",
    "BookingStatus",
]
