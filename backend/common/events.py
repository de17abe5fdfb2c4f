"""Event payloads passed between the location store and the live hub."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class LocationUpdate:
    """A user's new position, as published after the store commits it."""
    user_id: str
    latitude: float
    longitude: float
    timestamp: datetime
