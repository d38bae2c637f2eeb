from __future__ import annotations

import hashlib
import time
from typing import Any

import httpx
from django.conf import settings
from django.core.cache import cache

from charge_planner.exceptions import (
    ExternalServiceError,
    MalformedGeometryError,
    NoRouteFoundError,
)
from charge_planner.logger import logger
from charge_planner.services.polyline import decode_polyline
from charge_planner.services.types import GeoPoint, RouteData

METERS_PER_MILE = 1609.344
FIELD_MASK = "routes.distanceMeters,routes.polyline.encodedPolyline"


class DirectionsClient:
    """Google Routes API client returning decoded route geometry."""

    def __init__(self) -> None:
        self.url = settings.GOOGLE_ROUTES_URL
        self.api_key = settings.GOOGLE_ROUTES_API_KEY
        self.timeout = settings.GOOGLE_ROUTES_TIMEOUT_SECONDS
        self.retry_count = settings.GOOGLE_ROUTES_RETRY_COUNT

    def route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        intermediates: list[GeoPoint] | None = None,
    ) -> RouteData:
        intermediates = list(intermediates or [])

        cache_key = self._cache_key([origin, *intermediates, destination])
        cached = cache.get(cache_key)
        if cached:
            return self._build_route(cached["encoded_polyline"], cached["distance_meters"])

        payload: dict[str, Any] = {
            "origin": self._waypoint(origin),
            "destination": self._waypoint(destination),
            "travelMode": "DRIVE",
            "routingPreference": "TRAFFIC_AWARE_OPTIMAL",
        }
        if intermediates:
            payload["intermediates"] = [self._waypoint(point) for point in intermediates]

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

        logger.info(
            "Requesting route ({:.5f}, {:.5f}) -> ({:.5f}, {:.5f}) via {} intermediates",
            origin.latitude,
            origin.longitude,
            destination.latitude,
            destination.longitude,
            len(intermediates),
        )

        for attempt in range(self.retry_count + 1):
            try:
                response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
                response.raise_for_status()
                encoded_polyline, distance_meters = self._parse_response(response.json())
                route_data = self._build_route(encoded_polyline, distance_meters)
                cache.set(
                    cache_key,
                    {"encoded_polyline": encoded_polyline, "distance_meters": distance_meters},
                    timeout=settings.ROUTE_CACHE_TTL_SECONDS,
                )
                return route_data
            except NoRouteFoundError:
                raise
            except ValueError as exc:
                raise NoRouteFoundError("Directions response is not valid JSON") from exc
            except httpx.HTTPError as exc:
                logger.warning("Directions request attempt {} failed: {}", attempt + 1, exc)
                if attempt >= self.retry_count:
                    raise ExternalServiceError("Directions request failed") from exc
                time.sleep(0.3 * (attempt + 1))

        raise ExternalServiceError("Directions request failed")

    @staticmethod
    def _waypoint(point: GeoPoint) -> dict[str, Any]:
        return {
            "location": {
                "latLng": {"latitude": point.latitude, "longitude": point.longitude}
            }
        }

    @staticmethod
    def _cache_key(waypoints: list[GeoPoint]) -> str:
        encoded = "|".join(
            f"{point.latitude:.5f}:{point.longitude:.5f}" for point in waypoints
        ).encode()
        digest = hashlib.sha256(encoded).hexdigest()
        return f"route:{digest}"

    @staticmethod
    def _parse_response(payload: Any) -> tuple[str, float]:
        if not isinstance(payload, dict):
            raise NoRouteFoundError("Could not compute route")

        routes = payload.get("routes") or []
        if not routes:
            raise NoRouteFoundError("Could not compute route")

        first = routes[0] if isinstance(routes, list) else None
        if not isinstance(first, dict):
            raise NoRouteFoundError("Could not compute route")

        polyline = first.get("polyline") or {}
        if not isinstance(polyline, dict):
            raise NoRouteFoundError("Route geometry unavailable")

        encoded_polyline = str(polyline.get("encodedPolyline") or "")
        try:
            distance_meters = float(first.get("distanceMeters") or 0.0)
        except (TypeError, ValueError) as exc:
            raise NoRouteFoundError("Route distance unavailable") from exc
        return encoded_polyline, distance_meters

    @staticmethod
    def _build_route(encoded_polyline: str, distance_meters: float) -> RouteData:
        try:
            points = decode_polyline(encoded_polyline)
        except MalformedGeometryError as exc:
            raise NoRouteFoundError("Route geometry unavailable") from exc

        if len(points) < 2 and distance_meters > 0:
            raise NoRouteFoundError("Route geometry unavailable")

        return RouteData(
            points=points,
            distance_miles=distance_meters / METERS_PER_MILE,
            encoded_polyline=encoded_polyline,
        )
