"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils import timezone

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with message routing, group tracking and response helpers.

    Subclasses should override:
        - handle_message(msg_type, data): handle incoming messages
        - on_connect() / on_disconnect(close_code) for lifecycle hooks
    """

    async def connect(self):
        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        pass

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            await self.on_disconnect(close_code)
            for group in list(self.joined_groups):
                await self._leave_group(group)
        except Exception:
            logger.exception("Error during disconnect for connection %s", self.channel_name)

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        """Decode JSON frames, answering malformed ones with an error instead of closing."""
        if not text_data:
            await self.send_error("Only text JSON frames are supported")
            return
        try:
            content = await self.decode_json(text_data)
        except ValueError:
            await self.send_error("Invalid JSON")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, data: Dict[str, Any], **kwargs):
        """Route incoming messages to appropriate handlers."""
        if not isinstance(data, dict):
            await self.send_error("Message must be a JSON object")
            return

        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    @staticmethod
    def now_iso() -> str:
        return timezone.now().isoformat()

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
            "timestamp": self.now_iso(),
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a typed response to the client, stamped with the current time."""
        await self.send_json({
            "type": event_type,
            **kwargs,
            "timestamp": kwargs.get("timestamp") or self.now_iso(),
        })
