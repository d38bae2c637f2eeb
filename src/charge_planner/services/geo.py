from __future__ import annotations

import math

from charge_planner.services.types import GeoPoint

EARTH_RADIUS_MILES = 3958.8
KM_PER_MILE = 1.609344
KM_PER_DEGREE_LAT = 110.574
KM_PER_DEGREE_LON_EQUATOR = 111.320


def haversine_miles(start: GeoPoint, end: GeoPoint) -> float:
    lat1_rad = math.radians(start.latitude)
    lat2_rad = math.radians(end.latitude)

    dlat = lat2_rad - lat1_rad
    dlon = math.radians(end.longitude - start.longitude)

    a = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2.0) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def path_length_miles(points: list[GeoPoint], end_index: int | None = None) -> float:
    """Sum of segment lengths from the first point up to ``end_index`` inclusive."""
    last = len(points) - 1 if end_index is None else min(end_index, len(points) - 1)
    return sum(haversine_miles(points[index - 1], points[index]) for index in range(1, last + 1))


def bounding_box(center: GeoPoint, half_width_km: float) -> tuple[GeoPoint, GeoPoint]:
    """Return ``(south_west, north_east)`` corners of a square box around ``center``."""
    km_per_degree_lon = KM_PER_DEGREE_LON_EQUATOR * math.cos(math.radians(center.latitude))
    dlat = half_width_km / KM_PER_DEGREE_LAT
    dlon = half_width_km / km_per_degree_lon
    return (
        GeoPoint(latitude=center.latitude - dlat, longitude=center.longitude - dlon),
        GeoPoint(latitude=center.latitude + dlat, longitude=center.longitude + dlon),
    )
