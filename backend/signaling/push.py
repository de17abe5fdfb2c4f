"""
Push notifications for received signals.

notify() only enqueues a Celery task (no publish retries, so a down broker
fails fast); delivery happens in the worker:
the receiver is looked up, skipped when offline, the alert is formatted in the
receiver's distance unit and logged (APNs transport is not wired up), and a
signal_received event is sent to the receiver's open WebSocket connections.
"""

import logging
from typing import Any, Dict, Optional

from django.utils import timezone

from accounts.directory import distance_unit_preference, get_user, is_offline
from common.utils import MILE, KILOMETER, convert_distance
from services.propagation.exceptions import DeliveryError

logger = logging.getLogger(__name__)

ALERT_TITLE = "Signal!"
ALERT_SUBTITLE = "Someone nearby sent a signal"


def format_distance(distance: float, unit: str) -> str:
    """Human-readable distance: feet/metres under 0.1, otherwise one decimal."""
    if unit == KILOMETER:
        if distance < 0.1:
            return f"{int(distance * 1000)} m"
        return f"{distance:.1f} km"
    if distance < 0.1:
        return f"{int(distance * 5280)} ft"
    return f"{distance:.1f} mi"


class CeleryPushNotifier:
    """Fire-and-forget notifier used by the propagation engine."""

    def notify(self, receiver_id, sender_id, signal_id, distance: float, direction: str):
        """
        Raises:
            DeliveryError: the task could not be handed to the broker
        """
        from .tasks import send_signal_push_task

        try:
            send_signal_push_task.apply_async(
                args=(str(receiver_id), str(sender_id), str(signal_id), float(distance), direction),
                retry=False,
            )
        except Exception as e:
            raise DeliveryError(f"Could not enqueue push for signal {signal_id} to {receiver_id}: {e}") from e


def deliver_signal_push(
    receiver_id,
    sender_id,
    signal_id,
    distance: float,
    direction: str,
    unit: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Deliver one signal alert.

    Args:
        distance: distance in `unit` (the signal's unit; miles when omitted)

    Returns:
        Dict describing what happened ("delivered" flag plus reason or alert)
    """
    from realtime.notifications import notify_signal_received

    receiver = get_user(receiver_id)
    if receiver is None:
        logger.warning("Push skipped, receiver %s not found", receiver_id)
        return {"delivered": False, "reason": "receiver_not_found"}
    if is_offline(receiver):
        logger.info("Receiver %s is offline, skipping push notification", receiver_id)
        return {"delivered": False, "reason": "offline"}

    receiver_unit = distance_unit_preference(receiver)
    shown = convert_distance(distance, unit or MILE, receiver_unit)
    body = f"{format_distance(shown, receiver_unit)} {direction}"

    if receiver.device_token:
        logger.info("Push to %s (token %s...): %s / %s / %s (signal %s)",
                    receiver_id, receiver.device_token[:8], ALERT_TITLE, ALERT_SUBTITLE, body, signal_id)
    else:
        logger.info("Receiver %s has no device token, alert logged only: %s", receiver_id, body)

    try:
        notify_signal_received(receiver.id, {
            "signalID": str(signal_id),
            "senderID": str(sender_id),
            "distance": shown,
            "unit": receiver_unit,
            "direction": direction,
            "body": body,
            "receivedAt": timezone.now().isoformat(),
        })
    except Exception as e:
        logger.warning("signal_received event to %s failed: %s", receiver_id, e)

    return {"delivered": True, "body": body}
