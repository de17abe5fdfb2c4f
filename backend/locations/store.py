"""
Encrypted-at-rest location store.

This module provides:
- One live location row per user with a 24h TTL (lazy expiry on read)
- AES-GCM encrypted coordinates (see locations.crypto)
- Proximity queries sorted by distance, with per-record integrity checks
- Publication of committed updates to the live subscription hub

Architecture:
- update() replaces the user's row inside a transaction (update_or_create on
  the unique user key), then publishes a LocationUpdate on commit
- nearby_users() prefilters with a bounding box on the plaintext columns,
  decrypts each candidate and computes the exact distance/bearing from the
  decrypted coordinates
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from accounts.directory import require_user
from common.events import LocationUpdate
from common.utils import MILE, calculate_distance, calculate_bearing, bounding_box
from common.validation import make_coordinate, make_max_distance
from .crypto import LocationCodec, DecryptionFailed
from .models import UserLocation

logger = logging.getLogger(__name__)

# Upper bound for ad-hoc "who is around me" lookups
NEARBY_MAX_DISTANCE = 20.0


class LocationNotFound(Exception):
    """Raised when a user has no live (non-expired) location."""
    pass


@dataclass
class NearbyUser:
    """A user found by a proximity query."""
    user_id: str
    distance: float
    direction: str
    last_seen: datetime

    def as_dict(self):
        return {
            "userID": str(self.user_id),
            "distance": self.distance,
            "direction": self.direction,
            "lastSeen": self.last_seen.isoformat(),
        }


class LocationStore:
    """
    Owns the single current location per user.

    Args:
        codec: LocationCodec used for the encrypted columns
        publisher: called with a LocationUpdate after each committed update
        ttl: record lifetime (defaults to LOCATION_TTL_HOURS)
        clock: returns the current aware datetime
    """

    def __init__(
        self,
        codec: LocationCodec,
        publisher: Optional[Callable[[LocationUpdate], object]] = None,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self._codec = codec
        self._publisher = publisher
        self._ttl = ttl or timedelta(hours=getattr(settings, "LOCATION_TTL_HOURS", 24))
        self._clock = clock

    # ---------------------- Updates ----------------------

    def update(self, user_id, latitude, longitude) -> UserLocation:
        """
        Validate, encrypt and store the user's location, replacing any prior row.

        Raises:
            InvalidLocation: coordinates out of range
            UserNotFound: unknown user
        """
        coordinate = make_coordinate(latitude, longitude)
        user = require_user(user_id)
        now = self._clock()

        defaults = {
            "encrypted_latitude": self._codec.encrypt(coordinate.latitude),
            "encrypted_longitude": self._codec.encrypt(coordinate.longitude),
            "latitude": coordinate.latitude,
            "longitude": coordinate.longitude,
            "created_at": now,
            "expires_at": now + self._ttl,
        }

        event = LocationUpdate(
            user_id=str(user.id),
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            timestamp=now,
        )

        with transaction.atomic():
            record, created = UserLocation.objects.update_or_create(user=user, defaults=defaults)
            transaction.on_commit(lambda: self._publish(event))

        logger.info("Location %s for user %s", "stored" if created else "replaced", user.id)
        return record

    def _publish(self, event: LocationUpdate):
        """Hand the update to the hub; failures never reach the caller."""
        if self._publisher is None:
            return
        try:
            self._publisher(event)
        except Exception:
            logger.exception("Failed to publish location update for user %s", event.user_id)

    # ---------------------- Proximity Queries ----------------------

    def nearby_users(
        self,
        latitude: float,
        longitude: float,
        max_distance: float,
        min_distance: float = 0.0,
        exclude_user_id=None,
        unit: str = MILE,
        include_max: bool = True,
        now: Optional[datetime] = None,
    ) -> List[NearbyUser]:
        """
        Users with a live location within [min_distance, max_distance] of a point.

        With include_max=False the upper bound is exclusive, giving the
        half-open band [min_distance, max_distance).

        Records whose ciphertext fails to decrypt are logged and skipped; the
        rest of the query still succeeds.

        Returns:
            List of NearbyUser sorted by distance (possibly empty)
        """
        origin = make_coordinate(latitude, longitude)
        now = now or self._clock()

        min_lat, max_lat, min_lon, max_lon = bounding_box(
            origin.latitude, origin.longitude, max_distance, unit
        )
        candidates = UserLocation.objects.filter(
            expires_at__gt=now,
            latitude__gte=min_lat,
            latitude__lte=max_lat,
            longitude__gte=min_lon,
            longitude__lte=max_lon,
        )
        if exclude_user_id is not None:
            candidates = candidates.exclude(user_id=exclude_user_id)

        results: List[NearbyUser] = []
        for record in candidates:
            try:
                lat = self._codec.decrypt(record.encrypted_latitude)
                lng = self._codec.decrypt(record.encrypted_longitude)
            except DecryptionFailed as e:
                logger.error("Skipping location of user %s: %s", record.user_id, e)
                continue

            distance = calculate_distance(origin.latitude, origin.longitude, lat, lng, unit)
            if distance < min_distance:
                continue
            if distance > max_distance or (not include_max and distance >= max_distance):
                continue

            results.append(NearbyUser(
                user_id=str(record.user_id),
                distance=distance,
                direction=calculate_bearing(origin.latitude, origin.longitude, lat, lng),
                last_seen=record.created_at,
            ))

        results.sort(key=lambda item: item.distance)
        return results

    def get_location(self, user_id, now: Optional[datetime] = None):
        """
        Decrypted (latitude, longitude) of the user's live record.

        Raises:
            LocationNotFound: no live record, or its ciphertext is unreadable
        """
        now = now or self._clock()
        record = UserLocation.objects.filter(user_id=user_id, expires_at__gt=now).first()
        if record is None:
            raise LocationNotFound(f"User location not found: {user_id}")
        try:
            return (
                self._codec.decrypt(record.encrypted_latitude),
                self._codec.decrypt(record.encrypted_longitude),
            )
        except DecryptionFailed as e:
            logger.error("Unreadable location for user %s: %s", user_id, e)
            raise LocationNotFound(f"User location not readable: {user_id}")

    def nearby_users_for(self, user_id, max_distance=None) -> List[NearbyUser]:
        """
        Users around the caller's own live location, in the caller's distance unit.

        Raises:
            InvalidDistance: max_distance outside (0, NEARBY_MAX_DISTANCE]
            UserNotFound / LocationNotFound
        """
        distance = make_max_distance(
            max_distance,
            upper=NEARBY_MAX_DISTANCE,
            default=getattr(settings, "SIGNAL_MAX_DISTANCE", 10.0),
        )
        user = require_user(user_id)
        lat, lng = self.get_location(user.id)
        return self.nearby_users(
            lat,
            lng,
            max_distance=distance,
            exclude_user_id=user.id,
            unit=user.distance_unit,
        )

    # ---------------------- Maintenance ----------------------

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete rows past their TTL. Returns the number of rows removed."""
        now = now or self._clock()
        deleted, _ = UserLocation.objects.filter(expires_at__lte=now).delete()
        if deleted:
            logger.info("Purged %d expired location(s)", deleted)
        return deleted
