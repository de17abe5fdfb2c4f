"""Celery tasks for signal delivery and housekeeping."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def send_signal_push_task(receiver_id: str, sender_id: str, signal_id: str, distance: float, direction: str):
    """
    Deliver a push alert for a newly created receipt.

    The distance is in the signal's unit, which is looked up here so the
    alert can be shown in the receiver's preferred unit.
    """
    from signaling.models import Signal
    from signaling.push import deliver_signal_push

    try:
        unit = Signal.objects.filter(id=signal_id).values_list("distance_unit", flat=True).first()
        return deliver_signal_push(receiver_id, sender_id, signal_id, distance, direction, unit=unit)
    except Exception as e:
        logger.error("Error delivering push for signal %s to %s: %s", signal_id, receiver_id, e)
        return {"delivered": False, "reason": "error"}


@shared_task
def expire_stale_signals_task():
    """Periodic reconciler: expire active signals whose lifetime has passed."""
    from services.propagation import expire_stale_signals

    try:
        return expire_stale_signals()
    except Exception as e:
        logger.error("Error expiring stale signals: %s", e)
        return 0
