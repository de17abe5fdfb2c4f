"""
Validated value types shared by the location store, the hub and the engine.

Constructor functions either return an immutable value or raise a
ValidationError subclass; anything holding a Coordinate has already been
range-checked.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional


class ValidationError(Exception):
    """Raised when caller-supplied input is out of range or malformed."""
    pass


class InvalidLocation(ValidationError):
    """Raised for latitude/longitude outside [-90, 90] / [-180, 180]."""
    pass


class InvalidDistance(ValidationError):
    """Raised for a signal distance outside (0, SIGNAL_MAX_DISTANCE]."""
    pass


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


def _as_float(value: Any, name: str, error_cls) -> float:
    if isinstance(value, bool):
        raise error_cls(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise error_cls(f"{name} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise error_cls(f"{name} must be finite")
    return number


def make_coordinate(latitude: Any, longitude: Any) -> Coordinate:
    """Build a Coordinate, raising InvalidLocation when out of range."""
    lat = _as_float(latitude, "latitude", InvalidLocation)
    lng = _as_float(longitude, "longitude", InvalidLocation)

    if not -90.0 <= lat <= 90.0:
        raise InvalidLocation(f"Invalid latitude: {lat}. Must be between -90.0 and 90.0")
    if not -180.0 <= lng <= 180.0:
        raise InvalidLocation(f"Invalid longitude: {lng}. Must be between -180.0 and 180.0")

    return Coordinate(latitude=lat, longitude=lng)


def make_max_distance(value: Any, upper: float = 10.0, default: Optional[float] = None) -> float:
    """
    Validate a signal reach distance.

    None falls back to `default` (or `upper` when no default is given).
    Valid values lie in (0, upper].
    """
    if value is None:
        return float(default if default is not None else upper)

    distance = _as_float(value, "maxDistance", InvalidDistance)
    if distance <= 0 or distance > upper:
        raise InvalidDistance(f"Invalid distance: {distance}. Must be greater than 0 and at most {upper}")
    return distance


def make_radius(value: Any) -> float:
    """Validate a subscription radius (any finite number, zero allowed)."""
    radius = _as_float(value, "radius", InvalidDistance)
    if radius < 0:
        raise InvalidDistance(f"Invalid radius: {radius}. Must not be negative")
    return radius
