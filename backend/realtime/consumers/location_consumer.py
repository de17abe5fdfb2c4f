"""WebSocket consumer for live proximity location streaming."""

import logging
from typing import Dict, Any, Optional

from common.validation import ValidationError
from services.container import get_container
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class LocationStreamConsumer(BaseConsumer):
    """
    WebSocket consumer for ``ws/locations/stream/``.

    Handles:
        - subscribe: register a centre/radius with the hub and join the
          user's personal group (for signal_received events)
        - unsubscribe: drop the hub subscription
        - ping: keepalive, answered with pong

    Architecture:
        - The hub registry is keyed by this consumer's channel_name
        - Location updates arrive via channel_layer.send -> location_update()
        - Signal alerts arrive via group_send on user_<id> -> signal_received()
    """

    user_id: Optional[str] = None

    def get_hub(self):
        return get_container().hub

    async def on_disconnect(self, close_code):
        """Drop the hub subscription on disconnect."""
        self.get_hub().unsubscribe(self.channel_name)
        logger.info("Connection %s closed (code %s)", self.channel_name, close_code)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "subscribe":
            await self._handle_subscribe(data)
        elif msg_type == "unsubscribe":
            await self._handle_unsubscribe()
        elif msg_type == "ping":
            await self.send_success("pong")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_subscribe(self, data: Dict[str, Any]):
        user_id = data.get("userID")
        missing = [
            field for field in ("userID", "latitude", "longitude", "radius")
            if data.get(field) is None
        ]
        if missing:
            await self.send_error(f"subscribe requires {', '.join(missing)}")
            return

        try:
            subscription = self.get_hub().subscribe(
                self.channel_name,
                user_id,
                data.get("latitude"),
                data.get("longitude"),
                data.get("radius"),
            )
        except ValidationError as e:
            await self.send_error(str(e))
            return

        # Re-subscribing as another user moves the personal group too
        if self.user_id and self.user_id != subscription.user_id:
            await self._leave_group(f"user_{self.user_id}")
        self.user_id = subscription.user_id
        await self._join_group(f"user_{self.user_id}")

        await self.send_success(
            "subscription_confirmed",
            userID=subscription.user_id,
            latitude=subscription.latitude,
            longitude=subscription.longitude,
            radius=subscription.radius,
        )

    async def _handle_unsubscribe(self):
        # No reply; the client stops receiving location_update messages
        self.get_hub().unsubscribe(self.channel_name)

    # ---------------------- Event Handlers (from channel layer) ----------------------

    async def location_update(self, event):
        """Forward a hub broadcast to the client."""
        await self.send_json(event["message"])

    async def signal_received(self, event):
        """Forward a signal alert sent to this user's personal group."""
        await self.send_success("signal_received", **event.get("signal", {}))
