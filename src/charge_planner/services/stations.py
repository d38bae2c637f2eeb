from __future__ import annotations

import time
from typing import Any

import httpx
from django.conf import settings

from charge_planner.exceptions import ExternalServiceError, NoStationFoundError
from charge_planner.logger import logger
from charge_planner.services.geo import bounding_box, haversine_miles
from charge_planner.services.types import CandidateStation, GeoPoint

DEFAULT_STATION_NAME = "ChargePoint Station"


class StationLocator:
    """ChargePoint map client searching DC fast chargers around a route point."""

    def __init__(self) -> None:
        self.url = settings.CHARGEPOINT_MAP_API_URL
        self.timeout = settings.CHARGEPOINT_TIMEOUT_SECONDS
        self.retry_count = settings.CHARGEPOINT_RETRY_COUNT
        self.half_width_km = settings.STATION_SEARCH_HALF_WIDTH_KM
        self.page_size = settings.STATION_SEARCH_PAGE_SIZE

    @property
    def search_width_km(self) -> float:
        return self.half_width_km * 2.0

    def locate(self, point: GeoPoint) -> CandidateStation:
        """Return the nearest available station, with every candidate attached.

        Raises ``NoStationFoundError`` when the search box is empty and
        ``ExternalServiceError`` when the API cannot be reached.
        """
        payload = self._build_payload(point)
        headers = {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "Accept-Language": "en-GB",
        }

        for attempt in range(self.retry_count + 1):
            try:
                response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                return self._parse_response(response.json(), point)
            except NoStationFoundError:
                raise
            except ValueError as exc:
                raise NoStationFoundError("Station search response is not valid JSON") from exc
            except httpx.HTTPError as exc:
                logger.warning("Station search attempt {} failed: {}", attempt + 1, exc)
                if attempt >= self.retry_count:
                    raise ExternalServiceError("Station search request failed") from exc
                time.sleep(0.3 * (attempt + 1))

        raise ExternalServiceError("Station search request failed")

    def _build_payload(self, point: GeoPoint) -> dict[str, Any]:
        south_west, north_east = bounding_box(point, self.half_width_km)
        return {
            "station_list": {
                "screen_width": 417.5,
                "screen_height": 548,
                "ne_lat": north_east.latitude,
                "ne_lon": north_east.longitude,
                "sw_lat": south_west.latitude,
                "sw_lon": south_west.longitude,
                "page_size": self.page_size,
                "page_offset": "",
                "sort_by": "distance",
                "reference_lat": point.latitude,
                "reference_lon": point.longitude,
                "include_map_bound": True,
                "filter": {"status_available": True, "dc_fast_charging": True},
                "bound_output": True,
            }
        }

    @staticmethod
    def _parse_response(payload: Any, search_point: GeoPoint) -> CandidateStation:
        station_list = payload.get("station_list") if isinstance(payload, dict) else None
        stations = station_list.get("stations") if isinstance(station_list, dict) else None
        if not isinstance(stations, list) or not stations:
            raise NoStationFoundError("No charging stations near search point")

        first = stations[0]
        if not isinstance(first, dict):
            raise NoStationFoundError("Station payload is not an object")
        try:
            latitude = float(first.get("lat", first.get("latitude")))
            longitude = float(first.get("lon", first.get("longitude")))
        except (TypeError, ValueError) as exc:
            raise NoStationFoundError("Station payload has no coordinates") from exc

        location = GeoPoint(latitude=latitude, longitude=longitude)
        return CandidateStation(
            station_id=first.get("device_id", 0),
            station_name=_station_name(first),
            location=location,
            distance_from_search_point_miles=haversine_miles(search_point, location),
            raw_station=first,
            nearby_stations=list(stations),
        )


def _station_name(station: dict[str, Any]) -> str:
    for key in ("name", "station_name", "name1"):
        value = station.get(key)
        if isinstance(value, list):
            value = " ".join(str(part) for part in value if part)
        if value:
            return str(value)
    return DEFAULT_STATION_NAME
