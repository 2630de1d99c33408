"""Harbour and route Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from .common import Money


class CreateHarbourRequest(BaseModel):
    """Request schema for registering a harbour."""

    id: UUID | None = Field(None, description="Caller-assigned harbour ID; generated when omitted")
    name: str = Field(..., min_length=1, max_length=255, description="Harbour name")


class Harbour(BaseModel):
    """Harbour response schema."""

    id: str = Field(..., description="Unique harbour ID")
    name: str = Field(..., description="Harbour name")


class ListHarboursResponse(BaseModel):
    items: list[Harbour] = Field(..., description="Registered harbours")


class CreateRouteRequest(BaseModel):
    """Request schema for creating a route."""

    id: UUID | None = Field(None, description="Caller-assigned route ID; generated when omitted")
    origin_harbour_id: UUID = Field(..., description="Harbour the route starts at")
    destination_harbour_id: UUID = Field(..., description="Harbour the route ends at")
    price: Money = Field(..., description="Base price")


class GetRouteRequest(BaseModel):
    """Request schema addressing one route."""

    route_id: UUID = Field(..., description="Route ID")


class UpdatePriceRequest(BaseModel):
    """Request schema for changing a route's base price."""

    route_id: UUID = Field(..., description="Route ID")
    price: Money = Field(..., description="New base price")


class RouteStatistics(BaseModel):
    """Delay and cancellation counters maintained per route."""

    departures_cancelled: int = Field(..., ge=0)
    departures_delayed: int = Field(..., ge=0)
    delay_minutes_total: int = Field(..., ge=0)


class Route(BaseModel):
    """Route response schema."""

    id: str = Field(..., description="Unique route ID")
    origin_harbour_id: str = Field(..., description="Harbour the route starts at")
    destination_harbour_id: str = Field(..., description="Harbour the route ends at")
    price: Money = Field(..., description="Base price")
    statistics: RouteStatistics = Field(..., description="Sailing statistics")


class ListRoutesResponse(BaseModel):
    items: list[Route] = Field(..., description="Registered routes")
