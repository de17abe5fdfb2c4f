"""
Notification helpers for sending WebSocket messages to connected clients.

Every connection that subscribes as a user joins that user's personal group
(``user_<id>``); server-side code reaches the user through group_send.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_group(user_id) -> str:
    return f"user_{user_id}"


def notify_signal_received(receiver_id, signal: Dict[str, Any]) -> bool:
    """
    Send a signal_received event to every connection of the receiver.

    Args:
        receiver_id: ID of the receiving user
        signal: event fields (signalID, senderID, distance, direction, ...)

    Returns:
        True when the event was handed to the channel layer
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer; signal_received for %s dropped", receiver_id)
        return False

    async_to_sync(channel_layer.group_send)(
        user_group(receiver_id),
        {
            "type": "signal.received",
            "signal": signal,
        },
    )
    logger.debug("signal_received sent to %s", user_group(receiver_id))
    return True
