"""
Per-process wiring of the location and signal services.

The signaling app builds the container once in AppConfig.ready(); request
handlers, consumers and Celery tasks reach it through get_container(). Tests
construct their own containers with fakes and install them with
set_container().
"""

import logging
from dataclasses import dataclass
from typing import Optional

from locations.crypto import LocationCodec
from locations.store import LocationStore
from realtime.hub import ProximitySubscriptionHub
from .propagation.engine import SignalPropagationEngine
from .propagation.scheduler import DelayedScheduler, ThreadingScheduler

logger = logging.getLogger(__name__)

_container: Optional["ServiceContainer"] = None


@dataclass
class ServiceContainer:
    codec: LocationCodec
    hub: ProximitySubscriptionHub
    store: LocationStore
    scheduler: DelayedScheduler
    engine: SignalPropagationEngine


def build_container(
    codec: Optional[LocationCodec] = None,
    hub: Optional[ProximitySubscriptionHub] = None,
    notifier=None,
    scheduler: Optional[DelayedScheduler] = None,
) -> ServiceContainer:
    """
    Construct the service graph. Missing parts come from settings.

    Raises:
        EncryptionKeyMissing: no usable LOCATION_ENCRYPTION_KEY
    """
    from signaling.push import CeleryPushNotifier

    codec = codec or LocationCodec.from_settings()
    hub = hub or ProximitySubscriptionHub.from_settings()
    scheduler = scheduler or ThreadingScheduler()
    store = LocationStore(codec, publisher=hub.publish)
    engine = SignalPropagationEngine(
        store=store,
        notifier=notifier or CeleryPushNotifier(),
        scheduler=scheduler,
    )
    return ServiceContainer(codec=codec, hub=hub, store=store, scheduler=scheduler, engine=engine)


def set_container(container: Optional[ServiceContainer]):
    global _container
    _container = container


def get_container() -> ServiceContainer:
    """Return the process container, building it on first use."""
    global _container
    if _container is None:
        logger.info("Building service container")
        _container = build_container()
    return _container
