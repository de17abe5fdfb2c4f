"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application:
great-circle distance, 8-point compass bearing, and a coarse bounding box used to
prefilter database rows before the exact distance check.
"""

from math import radians, degrees, cos, sin, asin, atan2, sqrt
from typing import Tuple

MILE = "mile"
KILOMETER = "km"

# Earth's radius per distance unit
EARTH_RADIUS = {
    MILE: 3959.0,
    KILOMETER: 6371.0,
}

COMPASS_POINTS = ["N", "NE", "E", "SE", "S", "SW", "W", "NW"]

KM_PER_MILE = EARTH_RADIUS[KILOMETER] / EARTH_RADIUS[MILE]


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float, unit: str = MILE) -> float:
    """
    Calculate distance between two points using the Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point
        unit: "mile" or "km" (selects the earth radius)

    Returns:
        Distance in the requested unit
    """
    try:
        r = EARTH_RADIUS[unit]
    except KeyError:
        raise ValueError(f"Unknown distance unit: {unit}")

    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Clamp rounding noise so asin never sees a value above 1
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * r


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> str:
    """
    Compass direction (one of 8 points) from the first point to the second.

    The angle is atan2(delta_lon, delta_lat) normalised to [0, 360) and bucketed
    into 45 degree sectors centred on N, NE, E, ... (N covers 337.5..22.5).
    """
    angle = degrees(atan2(float(lon2) - float(lon1), float(lat2) - float(lat1)))
    if angle < 0:
        angle += 360.0
    index = int(round(angle / 45.0)) % 8
    return COMPASS_POINTS[index]


def convert_distance(value: float, from_unit: str, to_unit: str) -> float:
    """Convert a distance between miles and kilometres."""
    if from_unit == to_unit:
        return value
    if from_unit == MILE and to_unit == KILOMETER:
        return value * KM_PER_MILE
    if from_unit == KILOMETER and to_unit == MILE:
        return value / KM_PER_MILE
    raise ValueError(f"Cannot convert {from_unit} to {to_unit}")


def bounding_box(lat: float, lon: float, distance: float, unit: str = MILE) -> Tuple[float, float, float, float]:
    """
    Get an approximate (min_lat, max_lat, min_lon, max_lon) box around a point.

    The box always contains the circle of the given radius; callers must still
    apply calculate_distance() to the candidates. Near the poles (or when the
    radius spans the antimeridian) the longitude range widens to the full globe.
    """
    # Padded so coordinate rounding never drops a point on the circle edge
    angular = distance / EARTH_RADIUS[unit] * 1.01
    lat_offset = degrees(angular)

    min_lat = max(-90.0, lat - lat_offset)
    max_lat = min(90.0, lat + lat_offset)

    cos_lat = cos(radians(max(abs(min_lat), abs(max_lat))))
    if cos_lat <= 1e-9:
        return min_lat, max_lat, -180.0, 180.0

    lon_offset = degrees(angular / cos_lat)
    min_lon = lon - lon_offset
    max_lon = lon + lon_offset
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0

    return min_lat, max_lat, min_lon, max_lon
