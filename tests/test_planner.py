from __future__ import annotations

import math

import pytest

from charge_planner.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    NoRouteFoundError,
    NoStationFoundError,
)
from charge_planner.services.geo import EARTH_RADIUS_MILES
from charge_planner.services.planner import ChargePlannerService, scan_leg
from charge_planner.services.polyline import encode_polyline
from charge_planner.services.stations import StationLocator
from charge_planner.services.types import CandidateStation, GeoPoint, RouteData

LONG_ROUTE_MILES = [0.0, 45.0, 90.0, 135.0, 180.0, 300.0]


def _mile(miles: float, longitude: float = 0.0) -> GeoPoint:
    # Points on the prime meridian are exactly ``miles`` apart along the great circle.
    return GeoPoint(latitude=math.degrees(miles / EARTH_RADIUS_MILES), longitude=longitude)


def _route(miles: list[float], distance_miles: float | None = None) -> RouteData:
    points = [_mile(value) for value in miles]
    return RouteData(
        points=points,
        distance_miles=miles[-1] - miles[0] if distance_miles is None else distance_miles,
        encoded_polyline=encode_polyline(points),
    )


def _station(location: GeoPoint, station_id: int = 1) -> CandidateStation:
    raw = {"device_id": station_id, "lat": location.latitude, "lon": location.longitude}
    return CandidateStation(
        station_id=station_id,
        station_name=f"Station {station_id}",
        location=location,
        distance_from_search_point_miles=0.2,
        raw_station=raw,
        nearby_stations=[raw],
    )


class FakeDirections:
    def __init__(self, *routes: RouteData | Exception) -> None:
        self.routes = list(routes)
        self.calls: list[tuple[GeoPoint, GeoPoint, list[GeoPoint]]] = []

    def route(self, origin, destination, intermediates=None) -> RouteData:
        self.calls.append((origin, destination, list(intermediates or [])))
        if not self.routes:
            raise NoRouteFoundError("Could not compute route")
        item = self.routes.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeLocator:
    def __init__(self, *results: CandidateStation | Exception | None) -> None:
        self.results = list(results)
        self.calls: list[GeoPoint] = []

    def locate(self, point: GeoPoint) -> CandidateStation:
        self.calls.append(point)
        item = self.results.pop(0) if self.results else None
        if item is None:
            raise NoStationFoundError("No charging stations near search point")
        if isinstance(item, Exception):
            raise item
        return item


def _planner(directions: FakeDirections, locator: FakeLocator, **overrides) -> ChargePlannerService:
    options = {
        "buffer_percent": 0.30,
        "charge_target_percent": 90.0,
        "reach_threshold_miles": 1.0,
        "max_charging_stops": 20,
        "fallback_max_points": 300,
        "fallback_step_km": 11.2,
    }
    options.update(overrides)
    return ChargePlannerService(directions, locator, **options)


def _plan(planner: ChargePlannerService, intermediates=None, current_range=150.0, soc=100.0):
    return planner.plan_trip(
        origin=_mile(0.0),
        destination=_mile(300.0),
        intermediates=intermediates or [],
        current_range_miles=current_range,
        soc=soc,
    )


def _kinds(result) -> list[str]:
    return [point.kind for point in result.route_trace]


def test_short_trip_is_reachable_without_searching_stations() -> None:
    directions = FakeDirections(_route([0.0, 50.0, 100.0]))
    locator = FakeLocator()

    result = _plan(_planner(directions, locator))

    assert result.reachable is True
    assert result.remaining_range_miles == pytest.approx(50.0)
    assert result.final_soc == pytest.approx(100.0 / 3.0)
    assert result.stops == []
    assert _kinds(result) == ["origin", "destination"]
    assert locator.calls == []


def test_fast_path_lists_every_intermediate_in_order() -> None:
    first, second = _mile(20.0, 0.5), _mile(60.0, 0.5)
    directions = FakeDirections(_route([0.0, 100.0]))

    result = _plan(_planner(directions, FakeLocator()), intermediates=[first, second])

    assert _kinds(result) == ["origin", "intermediate", "intermediate", "destination"]
    assert [point.location for point in result.route_trace[1:3]] == [first, second]
    assert directions.calls[0][2] == [first, second]


def test_long_trip_inserts_charging_stop_at_last_reachable_point() -> None:
    station = _station(_mile(90.0, 0.01))
    directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([90.0, 170.0]))
    locator = FakeLocator(station)

    result = _plan(_planner(directions, locator))

    assert locator.calls == [_mile(90.0)]
    assert result.reachable is True
    assert len(result.stops) == 1
    stop = result.stops[0]
    assert stop.station is station
    assert stop.battery_percent_on_arrival == pytest.approx(40.0)
    assert stop.battery_percent_after_charging == 90.0
    assert result.remaining_range_miles == pytest.approx(135.0 - 80.0)
    assert result.final_soc == pytest.approx((135.0 - 80.0) / 150.0 * 100.0)
    assert result.total_distance_miles == pytest.approx(300.0)
    assert _kinds(result) == ["origin", "charging_station", "destination"]

    second_origin, second_destination, second_intermediates = directions.calls[1]
    assert second_origin == station.location
    assert second_destination == _mile(300.0)
    assert second_intermediates == []
    assert [leg.distance_miles for leg in result.legs] == pytest.approx([300.0, 80.0])


def test_no_station_anywhere_marks_trip_unreachable() -> None:
    directions = FakeDirections(_route(LONG_ROUTE_MILES))
    locator = FakeLocator()

    result = _plan(_planner(directions, locator))

    assert result.reachable is False
    assert result.stops == []
    assert result.remaining_range_miles == 0.0
    assert result.final_soc is None
    assert _kinds(result) == ["origin", "destination"]
    # Search point, then one search per 45-mile step back to the route start.
    assert locator.calls == [_mile(90.0), _mile(45.0), _mile(0.0)]
    assert len(directions.calls) == 1


def test_fallback_station_keeps_forward_arrival_percentage() -> None:
    station = _station(_mile(45.0, 0.01))
    directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([45.0, 125.0]))
    locator = FakeLocator(None, station)

    result = _plan(_planner(directions, locator))

    assert locator.calls == [_mile(90.0), _mile(45.0)]
    assert result.reachable is True
    assert result.stops[0].battery_percent_on_arrival == pytest.approx(40.0)


def test_fallback_search_waits_for_step_distance() -> None:
    directions = FakeDirections(_route(LONG_ROUTE_MILES))
    locator = FakeLocator()

    _plan(_planner(directions, locator, fallback_step_km=200.0))

    # 72 km then 145 km backwards never reaches the 200 km step.
    assert locator.calls == [_mile(90.0)]


def test_fallback_search_is_bounded_by_point_cap() -> None:
    directions = FakeDirections(_route(LONG_ROUTE_MILES))
    locator = FakeLocator()

    _plan(_planner(directions, locator, fallback_max_points=1))

    assert locator.calls == [_mile(90.0), _mile(45.0)]


def test_locator_failure_is_treated_as_no_station() -> None:
    station = _station(_mile(45.0))
    directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([45.0, 100.0]))
    locator = FakeLocator(ExternalServiceError("Station search request failed"), station)

    result = _plan(_planner(directions, locator))

    assert result.reachable is True
    assert result.stops[0].station is station


def test_later_leg_without_station_keeps_earlier_stops() -> None:
    station = _station(_mile(90.0))
    directions = FakeDirections(
        _route(LONG_ROUTE_MILES),
        _route([90.0, 135.0, 180.0, 225.0, 300.0]),
    )
    locator = FakeLocator(station)

    result = _plan(_planner(directions, locator))

    assert result.reachable is False
    assert len(result.stops) == 1
    assert _kinds(result) == ["origin", "charging_station", "destination"]
    # Post-charge effective range is 94.5 miles, so the second search starts at mile 180.
    assert locator.calls[1] == _mile(180.0)


def test_multiple_legs_use_post_charge_range() -> None:
    first = _station(_mile(90.0), station_id=1)
    second = _station(_mile(180.0), station_id=2)
    directions = FakeDirections(
        _route(LONG_ROUTE_MILES),
        _route([90.0, 135.0, 180.0, 225.0, 300.0]),
        _route([180.0, 300.0], distance_miles=90.0),
    )
    locator = FakeLocator(first, second)

    result = _plan(_planner(directions, locator))

    assert result.reachable is True
    assert [stop.station.station_id for stop in result.stops] == [1, 2]
    # Leaving the first stop with 135 miles and arriving 90 miles later.
    assert result.stops[1].battery_percent_on_arrival == pytest.approx(30.0)
    assert result.remaining_range_miles == pytest.approx(45.0)
    assert _kinds(result) == [
        "origin",
        "charging_station",
        "charging_station",
        "destination",
    ]


def test_intermediate_reached_before_charging_is_recorded_once() -> None:
    waypoint = _mile(45.0, 0.005)
    station = _station(_mile(90.0))
    directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([90.0, 170.0]))
    locator = FakeLocator(station)

    result = _plan(_planner(directions, locator), intermediates=[waypoint])

    assert _kinds(result) == ["origin", "intermediate", "charging_station", "destination"]
    assert result.route_trace[1].location == waypoint
    assert directions.calls[0][2] == [waypoint]
    assert directions.calls[1][2] == []


def test_unreached_intermediate_is_carried_to_next_leg() -> None:
    waypoint = _mile(250.0, 0.005)
    station = _station(_mile(90.0))
    directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([90.0, 170.0]))
    locator = FakeLocator(station)

    result = _plan(_planner(directions, locator), intermediates=[waypoint])

    assert directions.calls[1][2] == [waypoint]
    assert _kinds(result) == ["origin", "charging_station", "intermediate", "destination"]


def test_geometry_within_range_completes_without_search() -> None:
    # The provider distance exceeds the effective range but the geometry does not.
    directions = FakeDirections(_route([0.0, 50.0, 100.0], distance_miles=120.0))
    locator = FakeLocator()

    result = _plan(_planner(directions, locator))

    assert result.reachable is True
    assert result.remaining_range_miles == pytest.approx(30.0)
    assert locator.calls == []
    assert _kinds(result) == ["origin", "destination"]


def test_road_distance_beyond_actual_range_requires_charging() -> None:
    # 100 miles of geometry fits the 105-mile effective range, 160 road miles exceed 150.
    station = _station(_mile(100.0))
    directions = FakeDirections(
        _route([0.0, 50.0, 100.0], distance_miles=160.0), _route([100.0, 160.0])
    )
    locator = FakeLocator(station)

    result = _plan(_planner(directions, locator))

    assert locator.calls == [_mile(100.0)]
    assert result.reachable is True
    assert result.stops[0].battery_percent_on_arrival == pytest.approx(50.0 / 150.0 * 100.0)
    assert result.remaining_range_miles == pytest.approx(135.0 - 60.0)
    assert _kinds(result) == ["origin", "charging_station", "destination"]


def test_road_distance_beyond_actual_range_without_station_is_unreachable() -> None:
    directions = FakeDirections(_route([0.0, 50.0, 100.0], distance_miles=160.0))
    locator = FakeLocator()

    result = _plan(_planner(directions, locator))

    assert result.reachable is False
    assert result.remaining_range_miles == 0.0
    assert result.final_soc is None
    assert locator.calls == [_mile(100.0), _mile(50.0), _mile(0.0)]
    assert _kinds(result) == ["origin", "destination"]


def test_route_without_geometry_aborts_plan() -> None:
    directions = FakeDirections(RouteData(points=[], distance_miles=400.0, encoded_polyline=""))

    with pytest.raises(NoRouteFoundError):
        _plan(_planner(directions, FakeLocator()))


def test_fallback_step_defaults_to_overlapping_search_boxes() -> None:
    planner = ChargePlannerService(FakeDirections(), StationLocator())

    # Default 7 km half width gives a 14 km box, stepped at 80 %.
    assert planner.fallback_step_km == pytest.approx(11.2)


def test_charging_stop_cap_ends_plan_as_unreachable() -> None:
    station = _station(_mile(90.0))
    directions = FakeDirections(
        _route(LONG_ROUTE_MILES),
        _route([90.0, 135.0, 180.0, 225.0, 300.0]),
    )
    locator = FakeLocator(station, station)

    result = _plan(_planner(directions, locator, max_charging_stops=1))

    assert result.reachable is False
    assert len(result.stops) == 1
    assert len(locator.calls) == 1
    assert result.route_trace[-1].kind == "destination"


def test_missing_first_route_aborts_plan() -> None:
    directions = FakeDirections(NoRouteFoundError("Could not compute route"))

    with pytest.raises(NoRouteFoundError):
        _plan(_planner(directions, FakeLocator()))


def test_missing_route_after_charging_aborts_plan() -> None:
    directions = FakeDirections(_route(LONG_ROUTE_MILES))
    locator = FakeLocator(_station(_mile(90.0)))

    with pytest.raises(NoRouteFoundError):
        _plan(_planner(directions, locator))


def test_directions_outage_is_reported_as_no_route() -> None:
    directions = FakeDirections(ExternalServiceError("Directions request failed"))

    with pytest.raises(NoRouteFoundError):
        _plan(_planner(directions, FakeLocator()))


def test_zero_soc_is_rejected_before_any_provider_call() -> None:
    directions = FakeDirections(_route([0.0, 100.0]))

    with pytest.raises(InvalidInputError):
        _plan(_planner(directions, FakeLocator()), soc=0.0)

    assert directions.calls == []


def test_identical_requests_produce_identical_plans() -> None:
    def run():
        directions = FakeDirections(_route(LONG_ROUTE_MILES), _route([90.0, 170.0]))
        locator = FakeLocator(_station(_mile(90.0)))
        return _plan(_planner(directions, locator), intermediates=[_mile(45.0, 0.005)])

    assert run() == run()


def test_scan_leg_handles_empty_and_single_point_geometry() -> None:
    for points in ([], [_mile(0.0)]):
        scan = scan_leg(points, 10.0, [], 1.0)
        assert scan.exceeded is False
        assert scan.last_reachable_index == 0


def test_scan_leg_stops_at_first_point_beyond_range() -> None:
    points = [_mile(value) for value in (0.0, 10.0, 20.0, 30.0)]

    scan = scan_leg(points, 25.0, [], 1.0)

    assert scan.exceeded is True
    assert scan.last_reachable_index == 2
