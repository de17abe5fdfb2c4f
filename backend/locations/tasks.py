"""Celery tasks for location housekeeping."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def purge_expired_locations_task():
    """Delete location rows past their 24h TTL (reads already ignore them)."""
    from services.container import get_container

    try:
        return get_container().store.purge_expired()
    except Exception as e:
        logger.error("Error purging expired locations: %s", e)
        return 0
