from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class ChargePlanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    origin: Coordinate
    destination: Coordinate
    intermediates: list[Coordinate] = Field(default_factory=list, max_length=25)
    current_range_miles: float = Field(gt=0.0, le=2000.0)
    soc: float = Field(gt=0.0, le=100.0)


class ChargingStopResponse(BaseModel):
    station_id: Any
    station_name: str
    latitude: float
    longitude: float
    distance_from_search_point_miles: float
    battery_percent_on_arrival: float
    battery_percent_after_charging: float
    raw_station: dict[str, Any]
    nearby_stations: list[dict[str, Any]]


class RoutePointResponse(BaseModel):
    latitude: float
    longitude: float
    type: Literal["origin", "intermediate", "charging_station", "destination"]


class LegResponse(BaseModel):
    origin: Coordinate
    destination: Coordinate
    distance_miles: float
    encoded_polyline: str


class ChargePlanResponse(BaseModel):
    reachable: bool
    total_distance_miles: float
    remaining_range_miles: float
    final_soc: float | None
    stops: list[ChargingStopResponse]
    route_sequence: list[RoutePointResponse]
    encoded_polyline: str
    legs: list[LegResponse]
    assumptions: dict[str, float]
