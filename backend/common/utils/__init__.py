"""Common utility functions."""

from .geo import (
    MILE,
    KILOMETER,
    calculate_distance,
    calculate_bearing,
    convert_distance,
    bounding_box,
)

__all__ = [
    "MILE",
    "KILOMETER",
    "calculate_distance",
    "calculate_bearing",
    "convert_distance",
    "bounding_box",
]
