from __future__ import annotations

from django.conf import settings

from charge_planner.exceptions import (
    ExternalServiceError,
    InvalidInputError,
    NoRouteFoundError,
    NoStationFoundError,
)
from charge_planner.logger import logger
from charge_planner.schemas import (
    ChargePlanRequest,
    ChargePlanResponse,
    ChargingStopResponse,
    Coordinate,
    LegResponse,
    RoutePointResponse,
)
from charge_planner.services.directions import DirectionsClient
from charge_planner.services.geo import KM_PER_MILE, haversine_miles, path_length_miles
from charge_planner.services.range_model import (
    battery_percent,
    effective_range_miles,
    final_soc,
    full_range_miles,
    post_charge_range_miles,
)
from charge_planner.services.stations import StationLocator
from charge_planner.services.types import (
    CandidateStation,
    ChargingStopPlan,
    GeoPoint,
    LegPlan,
    LegScan,
    PlanResult,
    RouteData,
    RoutePoint,
)


def scan_leg(
    points: list[GeoPoint],
    effective_range: float,
    pending: list[GeoPoint],
    reach_threshold_miles: float,
) -> LegScan:
    """Walk a leg's geometry until the accumulated distance exceeds ``effective_range``.

    Intermediates within ``reach_threshold_miles`` of a point inside the range
    are reported as reached, in the order they were reached.
    """
    accumulated_miles = 0.0
    last_reachable_index = 0
    reached: list[GeoPoint] = []

    for index in range(1, len(points)):
        accumulated_miles += haversine_miles(points[index - 1], points[index])
        if accumulated_miles > effective_range:
            return LegScan(
                last_reachable_index=last_reachable_index,
                exceeded=True,
                reached=reached,
                pending=pending,
            )

        last_reachable_index = index
        still_pending: list[GeoPoint] = []
        for waypoint in pending:
            if haversine_miles(points[index], waypoint) <= reach_threshold_miles:
                logger.info(
                    "Reached intermediate stop at ({:.5f}, {:.5f})",
                    waypoint.latitude,
                    waypoint.longitude,
                )
                reached.append(waypoint)
            else:
                still_pending.append(waypoint)
        pending = still_pending

    return LegScan(
        last_reachable_index=last_reachable_index,
        exceeded=False,
        reached=reached,
        pending=pending,
    )


class ChargePlannerService:
    def __init__(
        self,
        directions_client: DirectionsClient | None = None,
        station_locator: StationLocator | None = None,
        *,
        buffer_percent: float | None = None,
        charge_target_percent: float | None = None,
        reach_threshold_miles: float | None = None,
        max_charging_stops: int | None = None,
        fallback_max_points: int | None = None,
        fallback_step_km: float | None = None,
    ) -> None:
        self.directions_client = directions_client or DirectionsClient()
        self.station_locator = station_locator or StationLocator()
        self.buffer_percent = (
            settings.EV_BUFFER_PERCENT if buffer_percent is None else buffer_percent
        )
        self.charge_target_percent = (
            settings.EV_CHARGE_TARGET_PERCENT
            if charge_target_percent is None
            else charge_target_percent
        )
        self.reach_threshold_miles = (
            settings.INTERMEDIATE_REACH_MILES
            if reach_threshold_miles is None
            else reach_threshold_miles
        )
        self.max_charging_stops = (
            settings.MAX_CHARGING_STOPS if max_charging_stops is None else max_charging_stops
        )
        self.fallback_max_points = (
            settings.STATION_FALLBACK_MAX_POINTS
            if fallback_max_points is None
            else fallback_max_points
        )
        # Searches overlap: the step is a fraction of the full search box width.
        self.fallback_step_km = (
            self.station_locator.search_width_km * settings.STATION_FALLBACK_OVERLAP
            if fallback_step_km is None
            else fallback_step_km
        )

    def plan(self, request: ChargePlanRequest) -> ChargePlanResponse:
        result = self.plan_trip(
            origin=_to_point(request.origin),
            destination=_to_point(request.destination),
            intermediates=[_to_point(point) for point in request.intermediates],
            current_range_miles=request.current_range_miles,
            soc=request.soc,
        )

        stops = [
            ChargingStopResponse(
                station_id=stop.station.station_id,
                station_name=stop.station.station_name,
                latitude=stop.station.location.latitude,
                longitude=stop.station.location.longitude,
                distance_from_search_point_miles=round(
                    stop.station.distance_from_search_point_miles, 3
                ),
                battery_percent_on_arrival=round(stop.battery_percent_on_arrival, 2),
                battery_percent_after_charging=round(stop.battery_percent_after_charging, 2),
                raw_station=stop.station.raw_station,
                nearby_stations=stop.station.nearby_stations,
            )
            for stop in result.stops
        ]

        return ChargePlanResponse(
            reachable=result.reachable,
            total_distance_miles=round(result.total_distance_miles, 3),
            remaining_range_miles=round(result.remaining_range_miles, 3),
            final_soc=None if result.final_soc is None else round(result.final_soc, 2),
            stops=stops,
            route_sequence=[
                RoutePointResponse(
                    latitude=point.location.latitude,
                    longitude=point.location.longitude,
                    type=point.kind,
                )
                for point in result.route_trace
            ],
            encoded_polyline=result.encoded_polyline,
            legs=[
                LegResponse(
                    origin=_to_coordinate(leg.origin),
                    destination=_to_coordinate(leg.destination),
                    distance_miles=round(leg.distance_miles, 3),
                    encoded_polyline=leg.encoded_polyline,
                )
                for leg in result.legs
            ],
            assumptions={
                "buffer_percent": self.buffer_percent,
                "charge_target_percent": self.charge_target_percent,
                "full_range_miles": round(result.full_range_miles, 3),
                "effective_range_miles": round(
                    effective_range_miles(request.current_range_miles, self.buffer_percent), 3
                ),
            },
        )

    def plan_trip(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        intermediates: list[GeoPoint],
        current_range_miles: float,
        soc: float,
    ) -> PlanResult:
        if current_range_miles < 0:
            raise InvalidInputError("Current range cannot be negative")

        full_range = full_range_miles(current_range_miles, soc)
        leg_range = current_range_miles
        leg_soc = soc
        effective_range = effective_range_miles(leg_range, self.buffer_percent)

        route = self._fetch_route(origin, destination, intermediates)
        first_route = route
        legs = [LegPlan(origin, destination, route.distance_miles, route.encoded_polyline)]
        trace = [RoutePoint(origin, "origin")]
        stops: list[ChargingStopPlan] = []

        def finish(reachable: bool, remaining_range: float, soc_at_end: float | None) -> PlanResult:
            trace.append(RoutePoint(destination, "destination"))
            logger.info(
                "Plan finished: reachable={} stops={} legs={}", reachable, len(stops), len(legs)
            )
            return PlanResult(
                reachable=reachable,
                total_distance_miles=first_route.distance_miles,
                remaining_range_miles=remaining_range,
                final_soc=soc_at_end,
                full_range_miles=full_range,
                stops=stops,
                route_trace=trace,
                encoded_polyline=first_route.encoded_polyline,
                legs=legs,
            )

        if route.distance_miles <= effective_range:
            trace.extend(RoutePoint(point, "intermediate") for point in intermediates)
            return finish(
                True,
                leg_range - route.distance_miles,
                final_soc(leg_soc, leg_range, route.distance_miles, full_range),
            )

        pending = list(intermediates)
        while True:
            scan = scan_leg(route.points, effective_range, pending, self.reach_threshold_miles)
            trace.extend(RoutePoint(point, "intermediate") for point in scan.reached)
            pending = scan.pending

            if not scan.exceeded:
                if route.distance_miles <= leg_range:
                    trace.extend(RoutePoint(point, "intermediate") for point in pending)
                    return finish(
                        True,
                        leg_range - route.distance_miles,
                        final_soc(leg_soc, leg_range, route.distance_miles, full_range),
                    )
                # Geometry fits but the road distance does not: charge at the last point.
                logger.warning(
                    "Road distance {:.1f} mi exceeds range {:.1f} mi although geometry fits",
                    route.distance_miles,
                    leg_range,
                )

            if len(stops) >= self.max_charging_stops:
                logger.warning(
                    "Stopping after {} charging stops without reaching destination", len(stops)
                )
                return finish(False, 0.0, None)

            distance_to_search_point = path_length_miles(route.points, scan.last_reachable_index)
            arrival_percent = battery_percent(leg_range - distance_to_search_point, full_range)

            station = self._find_station(route.points, scan.last_reachable_index)
            if station is None:
                logger.warning(
                    "No charging station found within {} points before mile {:.1f}",
                    self.fallback_max_points,
                    distance_to_search_point,
                )
                return finish(False, 0.0, None)

            stops.append(
                ChargingStopPlan(
                    station=station,
                    battery_percent_on_arrival=arrival_percent,
                    battery_percent_after_charging=self.charge_target_percent,
                )
            )
            trace.append(RoutePoint(station.location, "charging_station"))

            leg_range = post_charge_range_miles(full_range, self.charge_target_percent)
            leg_soc = self.charge_target_percent
            effective_range = effective_range_miles(leg_range, self.buffer_percent)

            route = self._fetch_route(station.location, destination, pending)
            legs.append(
                LegPlan(station.location, destination, route.distance_miles, route.encoded_polyline)
            )

            if route.distance_miles <= effective_range:
                trace.extend(RoutePoint(point, "intermediate") for point in pending)
                return finish(
                    True,
                    leg_range - route.distance_miles,
                    final_soc(leg_soc, leg_range, route.distance_miles, full_range),
                )

    def _fetch_route(
        self, origin: GeoPoint, destination: GeoPoint, intermediates: list[GeoPoint]
    ) -> RouteData:
        try:
            route = self.directions_client.route(origin, destination, intermediates)
        except ExternalServiceError as exc:
            logger.error("Directions provider unavailable: {}", exc)
            raise NoRouteFoundError("Could not compute route") from exc

        if len(route.points) < 2 and route.distance_miles > 0:
            raise NoRouteFoundError("Route geometry unavailable")
        return route

    def _find_station(self, points: list[GeoPoint], search_index: int) -> CandidateStation | None:
        station = self._search_station(points[search_index])
        if station is not None:
            return station

        accumulated_km = 0.0
        lowest_index = max(0, search_index - self.fallback_max_points)
        for index in range(search_index - 1, lowest_index - 1, -1):
            accumulated_km += haversine_miles(points[index], points[index + 1]) * KM_PER_MILE
            if accumulated_km < self.fallback_step_km:
                continue

            accumulated_km = 0.0
            logger.info(
                "Retrying station search {} points back along the route", search_index - index
            )
            station = self._search_station(points[index])
            if station is not None:
                return station

        return None

    def _search_station(self, point: GeoPoint) -> CandidateStation | None:
        logger.info(
            "Searching charging stations near ({:.5f}, {:.5f})", point.latitude, point.longitude
        )
        try:
            return self.station_locator.locate(point)
        except NoStationFoundError:
            return None
        except ExternalServiceError as exc:
            logger.warning("Station search failed, treating as no station: {}", exc)
            return None


def _to_point(coordinate: Coordinate) -> GeoPoint:
    return GeoPoint(latitude=coordinate.latitude, longitude=coordinate.longitude)


def _to_coordinate(point: GeoPoint) -> Coordinate:
    return Coordinate(latitude=point.latitude, longitude=point.longitude)
