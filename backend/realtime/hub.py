"""
In-memory registry of live proximity subscriptions.

Each WebSocket connection may hold one subscription: a centre point and a
radius in kilometres. When a location update is committed, the hub fans it
out to every subscription (other than the mover's own) whose centre is within
its radius of the new position.

Delivery goes through the Channels layer to the consumer's channel name, so
the connection id of a subscription is the consumer's ``channel_name``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.utils import timezone

from common.events import LocationUpdate
from common.utils import KILOMETER, calculate_distance, calculate_bearing
from common.validation import InvalidDistance, make_coordinate, make_radius

logger = logging.getLogger(__name__)

Sender = Callable[[str, Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    connection_id: str
    user_id: str
    latitude: float
    longitude: float
    radius: float
    subscribed_at: datetime


async def channel_layer_sender(connection_id: str, message: Dict[str, Any]):
    """Deliver a message to a consumer through the configured channel layer."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        raise RuntimeError("No channel layer configured")
    await channel_layer.send(connection_id, {
        "type": "location.update",
        "message": message,
    })


class ProximitySubscriptionHub:
    """
    Thread-safe subscription registry with distance-filtered broadcast.

    Args:
        sender: async callable (connection_id, message) used for delivery;
            defaults to the Channels layer
        max_radius: optional upper bound on subscription radius (km)
        executor: runs publish() hand-offs; defaults to a small thread pool
    """

    def __init__(
        self,
        sender: Optional[Sender] = None,
        max_radius: Optional[float] = None,
        executor: Optional[Executor] = None,
    ):
        self._sender = sender or channel_layer_sender
        self._max_radius = max_radius
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="hub-broadcast")
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "ProximitySubscriptionHub":
        return cls(max_radius=getattr(settings, "REALTIME_MAX_RADIUS_KM", None))

    # ---------------------- Registry ----------------------

    def subscribe(self, connection_id: str, user_id, latitude, longitude, radius) -> Subscription:
        """
        Register or replace the subscription held by a connection.

        Raises:
            InvalidLocation: centre out of range
            InvalidDistance: radius negative or not a number (or above the configured cap)
        """
        centre = make_coordinate(latitude, longitude)
        radius = make_radius(radius)
        if self._max_radius is not None and radius > self._max_radius:
            raise InvalidDistance(f"Invalid radius: {radius}. Must be at most {self._max_radius}")

        subscription = Subscription(
            connection_id=connection_id,
            user_id=str(user_id),
            latitude=centre.latitude,
            longitude=centre.longitude,
            radius=radius,
            subscribed_at=timezone.now(),
        )
        with self._lock:
            self._subscriptions[connection_id] = subscription

        logger.info("Connection %s subscribed for user %s (radius %.2f km)",
                    connection_id, subscription.user_id, radius)
        return subscription

    def unsubscribe(self, connection_id: str) -> bool:
        """Remove a connection's subscription. Unknown ids are ignored."""
        with self._lock:
            removed = self._subscriptions.pop(connection_id, None)
        if removed is not None:
            logger.info("Connection %s unsubscribed", connection_id)
        return removed is not None

    def get(self, connection_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(connection_id)

    def connection_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def is_user_connected(self, user_id) -> bool:
        user_id = str(user_id)
        with self._lock:
            return any(sub.user_id == user_id for sub in self._subscriptions.values())

    # ---------------------- Broadcast ----------------------

    def _targets(self, update: LocationUpdate):
        """Snapshot the registry and pick the subscriptions within range."""
        with self._lock:
            snapshot = list(self._subscriptions.values())

        targets = []
        for sub in snapshot:
            if sub.user_id == str(update.user_id):
                continue
            distance = calculate_distance(
                sub.latitude, sub.longitude, update.latitude, update.longitude, KILOMETER
            )
            if distance > sub.radius:
                continue
            message = {
                "type": "location_update",
                "userID": str(update.user_id),
                "latitude": update.latitude,
                "longitude": update.longitude,
                "distance": distance,
                "direction": calculate_bearing(
                    sub.latitude, sub.longitude, update.latitude, update.longitude
                ),
                "timestamp": update.timestamp.isoformat(),
            }
            targets.append((sub.connection_id, message))
        return targets

    async def broadcast_async(self, update: LocationUpdate) -> int:
        """
        Deliver an update to every in-range subscriber concurrently.

        A failing connection is logged and does not affect the others.

        Returns:
            Number of successful deliveries
        """
        targets = self._targets(update)
        if not targets:
            return 0

        results: List[Any] = await asyncio.gather(
            *(self._sender(connection_id, message) for connection_id, message in targets),
            return_exceptions=True,
        )

        delivered = 0
        for (connection_id, _), result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Delivery to connection %s failed: %s", connection_id, result)
            else:
                delivered += 1

        logger.debug("Location update from user %s delivered to %d/%d connection(s)",
                     update.user_id, delivered, len(targets))
        return delivered

    def broadcast(self, update: LocationUpdate) -> int:
        """Synchronous broadcast; waits for every send to finish."""
        return async_to_sync(self.broadcast_async)(update)

    def publish(self, update: LocationUpdate) -> Future:
        """
        Fire-and-forget broadcast used by the location store's commit hook.

        Returns immediately; the returned future resolves to the delivery count.
        """
        future = self._executor.submit(self.broadcast, update)
        future.add_done_callback(self._log_publish_failure)
        return future

    @staticmethod
    def _log_publish_failure(future: Future):
        error = future.exception()
        if error is not None:
            logger.error("Location broadcast failed: %s", error)
