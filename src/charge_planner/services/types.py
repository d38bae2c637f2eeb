from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

RoutePointKind = Literal["origin", "intermediate", "charging_station", "destination"]


@dataclass(slots=True, frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(slots=True, frozen=True)
class RouteData:
    points: list[GeoPoint]
    distance_miles: float
    encoded_polyline: str


@dataclass(slots=True, frozen=True)
class CandidateStation:
    station_id: Any
    station_name: str
    location: GeoPoint
    distance_from_search_point_miles: float
    raw_station: dict[str, Any]
    nearby_stations: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ChargingStopPlan:
    station: CandidateStation
    battery_percent_on_arrival: float
    battery_percent_after_charging: float


@dataclass(slots=True, frozen=True)
class RoutePoint:
    location: GeoPoint
    kind: RoutePointKind


@dataclass(slots=True, frozen=True)
class LegPlan:
    origin: GeoPoint
    destination: GeoPoint
    distance_miles: float
    encoded_polyline: str


@dataclass(slots=True, frozen=True)
class LegScan:
    """Outcome of walking one leg's geometry against an effective range."""

    last_reachable_index: int
    exceeded: bool
    reached: list[GeoPoint]
    pending: list[GeoPoint]


@dataclass(slots=True, frozen=True)
class PlanResult:
    reachable: bool
    total_distance_miles: float
    remaining_range_miles: float
    final_soc: float | None
    full_range_miles: float
    stops: list[ChargingStopPlan]
    route_trace: list[RoutePoint]
    encoded_polyline: str
    legs: list[LegPlan]
