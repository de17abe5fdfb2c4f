"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .location_consumer import LocationStreamConsumer

__all__ = [
    "BaseConsumer",
    "LocationStreamConsumer",
]
