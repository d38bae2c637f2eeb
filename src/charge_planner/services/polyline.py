"""Google encoded polyline codec.

Coordinates are scaled by 1e5, delta-coded against the previous point and
written as zig-zag signed integers in 5-bit chunks offset by 63, with 0x20 as
the continuation bit.
"""

from __future__ import annotations

from charge_planner.exceptions import MalformedGeometryError
from charge_planner.services.types import GeoPoint

PRECISION = 1e5
CHUNK_BITS = 5
CHUNK_MASK = 0x1F
CONTINUATION_BIT = 0x20
ASCII_OFFSET = 63


def decode_polyline(encoded: str) -> list[GeoPoint]:
    points: list[GeoPoint] = []
    index = 0
    latitude = 0
    longitude = 0

    while index < len(encoded):
        delta_lat, index = _decode_value(encoded, index)
        delta_lon, index = _decode_value(encoded, index)
        latitude += delta_lat
        longitude += delta_lon
        points.append(GeoPoint(latitude=latitude / PRECISION, longitude=longitude / PRECISION))

    return points


def encode_polyline(points: list[GeoPoint]) -> str:
    chunks: list[str] = []
    previous_lat = 0
    previous_lon = 0

    for point in points:
        latitude = round(point.latitude * PRECISION)
        longitude = round(point.longitude * PRECISION)
        chunks.append(_encode_value(latitude - previous_lat))
        chunks.append(_encode_value(longitude - previous_lon))
        previous_lat = latitude
        previous_lon = longitude

    return "".join(chunks)


def _decode_value(encoded: str, index: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise MalformedGeometryError("Encoded polyline ends in the middle of a value")

        chunk = ord(encoded[index]) - ASCII_OFFSET
        if chunk < 0:
            raise MalformedGeometryError(f"Invalid polyline character at position {index}")
        index += 1

        result |= (chunk & CHUNK_MASK) << shift
        shift += CHUNK_BITS
        if chunk < CONTINUATION_BIT:
            break

    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks: list[str] = []
    while value >= CONTINUATION_BIT:
        chunks.append(chr((CONTINUATION_BIT | (value & CHUNK_MASK)) + ASCII_OFFSET))
        value >>= CHUNK_BITS
    chunks.append(chr(value + ASCII_OFFSET))
    return "".join(chunks)
