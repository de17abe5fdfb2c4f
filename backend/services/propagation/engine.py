"""
Signal propagation engine.

A signal travels outward from its origin in one-unit rings, one ring per
second: ring k reaches users in the band [k-1, k) (the last ring is closed
at max_distance). Every user reached gets at most one receipt per signal and
one push notification. The signal expires SIGNAL_LIFETIME_SECONDS after it
was sent.

Flow:
    send()/respond() -> Signal row (active) -> on commit: start_run()
    start_run() -> scheduler jobs: ring 1..n at k * interval, expiry at lifetime
    ring job -> store.nearby_users(band) -> receipt get_or_create for each match
             -> new receivers handed to the push executor (the ring never waits)
"""

import logging
import math
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from accounts.directory import is_offline, require_user
from common.validation import Coordinate, make_coordinate, make_max_distance
from signaling.models import Signal, SignalReceipt
from .exceptions import CooldownActive, DeliveryError, NotAuthorized, SignalNotFound, UserOffline
from .scheduler import DelayedScheduler

User = get_user_model()
logger = logging.getLogger(__name__)


@dataclass
class PropagationRun:
    """Progress of one signal's timed propagation."""
    signal_id: str
    ring_count: int
    started_at: datetime
    completed_rings: Set[int] = field(default_factory=set)
    reached: int = 0

    @property
    def finished(self) -> bool:
        return len(self.completed_rings) >= self.ring_count


def ring_count(max_distance: float) -> int:
    return max(1, int(math.floor(max_distance)))


def ring_band(ring: int, rings: int, max_distance: float):
    """(lower, upper, include_upper) for ring k of n."""
    if ring >= rings:
        return float(ring - 1), float(max_distance), True
    return float(ring - 1), float(ring), False


def expire_stale_signals(now: Optional[datetime] = None) -> int:
    """Expire active signals past expires_at (recovers runs lost to a restart)."""
    now = now or timezone.now()
    expired = Signal.objects.filter(
        status=Signal.STATUS_ACTIVE, expires_at__lte=now
    ).update(status=Signal.STATUS_EXPIRED)
    if expired:
        logger.info("Expired %d stale signal(s)", expired)
    return expired


class SignalPropagationEngine:
    """
    Sends signals and drives their ring-by-ring propagation.

    Args:
        store: LocationStore used for band queries
        notifier: object with notify(receiver_id, sender_id, signal_id, distance, direction)
        scheduler: DelayedScheduler running ring and expiry jobs
        cooldown_seconds / lifetime_seconds / max_distance / ring_interval:
            default to the SIGNAL_* settings
        clock: returns the current aware datetime
        push_executor: runs notifier calls off the ring thread; defaults to a
            small thread pool
    """

    def __init__(
        self,
        store,
        notifier,
        scheduler: DelayedScheduler,
        cooldown_seconds: Optional[int] = None,
        lifetime_seconds: Optional[int] = None,
        max_distance: Optional[float] = None,
        ring_interval: Optional[float] = None,
        clock: Callable[[], datetime] = timezone.now,
        push_executor: Optional[Executor] = None,
    ):
        self._store = store
        self._notifier = notifier
        self._scheduler = scheduler
        self.cooldown_seconds = cooldown_seconds if cooldown_seconds is not None else getattr(settings, "SIGNAL_COOLDOWN_SECONDS", 3600)
        self.lifetime_seconds = lifetime_seconds if lifetime_seconds is not None else getattr(settings, "SIGNAL_LIFETIME_SECONDS", 600)
        self.max_distance = max_distance if max_distance is not None else getattr(settings, "SIGNAL_MAX_DISTANCE", 10.0)
        self.ring_interval = ring_interval if ring_interval is not None else getattr(settings, "SIGNAL_RING_INTERVAL_SECONDS", 1.0)
        self._clock = clock
        self._push_executor = push_executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="signal-push")

        self._runs: Dict[str, PropagationRun] = {}
        self._runs_lock = threading.Lock()

    # ---------------------- Sending ----------------------

    def send(self, sender_id, latitude, longitude, max_distance=None) -> Signal:
        """
        Create a signal at the sender's position and start propagating it.

        Raises:
            InvalidLocation / InvalidDistance: bad input
            UserNotFound: unknown sender
            UserOffline: sender is marked offline
            CooldownActive: sender has an active signal inside the cooldown window
        """
        coordinate = make_coordinate(latitude, longitude)
        distance = make_max_distance(max_distance, upper=self.max_distance)
        sender = require_user(sender_id)

        with transaction.atomic():
            sender = self._lock_sender(sender.pk)
            self._check_cooldown(sender)
            signal = self._create_signal(sender, coordinate, distance)

        logger.info("Signal %s sent by %s (reach %.2f %s)",
                    signal.id, sender.pk, distance, signal.distance_unit)
        return signal

    def respond(self, original_signal_id, responder_id, latitude, longitude, max_distance=None) -> Signal:
        """
        Answer a received signal with a new signal of the responder's own.

        Cooldown does not apply to responses.

        Raises:
            NotAuthorized: responder holds no receipt for the original signal
            plus the validation/user errors of send()
        """
        coordinate = make_coordinate(latitude, longitude)
        distance = make_max_distance(max_distance, upper=self.max_distance)
        responder = require_user(responder_id)

        try:
            receipt = SignalReceipt.objects.select_related("signal").filter(
                signal_id=original_signal_id, receiver=responder
            ).first()
        except (ValueError, DjangoValidationError):
            receipt = None
        if receipt is None:
            raise NotAuthorized(
                f"User {responder.pk} has not received signal {original_signal_id}"
            )

        with transaction.atomic():
            responder = self._lock_sender(responder.pk)
            signal = self._create_signal(
                responder, coordinate, distance, response_to=receipt.signal
            )
            receipt.responded = True
            receipt.responded_at = signal.sent_at
            receipt.save(update_fields=["responded", "responded_at"])

        logger.info("Signal %s sent by %s in response to %s",
                    signal.id, responder.pk, original_signal_id)
        return signal

    def _lock_sender(self, pk):
        sender = User.objects.select_for_update().get(pk=pk)
        if is_offline(sender):
            raise UserOffline(f"User {pk} is offline")
        return sender

    def _check_cooldown(self, sender):
        now = self._clock()
        latest = Signal.objects.filter(
            sender=sender,
            status=Signal.STATUS_ACTIVE,
            sent_at__gt=now - timedelta(seconds=self.cooldown_seconds),
        ).order_by("-sent_at").first()
        if latest is None:
            return

        elapsed = (now - latest.sent_at).total_seconds()
        remaining = max(1, int(math.ceil(self.cooldown_seconds - elapsed)))
        logger.info("Signal from %s rejected, cooldown %ss remaining", sender.pk, remaining)
        raise CooldownActive(remaining)

    def _create_signal(self, sender, coordinate: Coordinate, distance: float, response_to=None) -> Signal:
        now = self._clock()
        signal = Signal.objects.create(
            sender=sender,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            max_distance=distance,
            distance_unit=sender.distance_unit,
            status=Signal.STATUS_ACTIVE,
            response_to=response_to,
            sent_at=now,
            expires_at=now + timedelta(seconds=self.lifetime_seconds),
        )
        transaction.on_commit(lambda: self.start_run(signal))
        return signal

    # ---------------------- Propagation ----------------------

    def start_run(self, signal: Signal) -> PropagationRun:
        """Schedule the ring jobs and the expiry job for a committed signal."""
        key = str(signal.id)
        run = PropagationRun(
            signal_id=key,
            ring_count=ring_count(signal.max_distance),
            started_at=self._clock(),
        )
        with self._runs_lock:
            self._runs[key] = run

        for ring in range(1, run.ring_count + 1):
            self._scheduler.schedule(key, ring * self.ring_interval, self._run_ring, key, ring)
        self._scheduler.schedule(key, self.lifetime_seconds, self._expire, key)

        logger.debug("Signal %s scheduled %d ring(s)", key, run.ring_count)
        return run

    def _run_ring(self, signal_id: str, ring: int):
        with self._runs_lock:
            run = self._runs.get(signal_id)
        if run is None:
            return

        try:
            signal = Signal.objects.get(id=signal_id)
            if signal.status == Signal.STATUS_EXPIRED:
                logger.debug("Signal %s expired before ring %d", signal_id, ring)
                return

            lower, upper, include_upper = ring_band(ring, run.ring_count, signal.max_distance)
            matches = self._store.nearby_users(
                signal.latitude,
                signal.longitude,
                max_distance=upper,
                min_distance=lower,
                exclude_user_id=signal.sender_id,
                unit=signal.distance_unit,
                include_max=include_upper,
            )

            new_matches = []
            for match in matches:
                _, created = SignalReceipt.objects.get_or_create(
                    signal=signal,
                    receiver_id=match.user_id,
                    defaults={
                        "distance": match.distance,
                        "direction": match.direction,
                        "received_at": self._clock(),
                    },
                )
                if created:
                    new_matches.append(match)

            sender_id = str(signal.sender_id)
            for match in new_matches:
                self._push_executor.submit(self._notify, signal_id, sender_id, match)

            with self._runs_lock:
                run.reached += len(new_matches)
            logger.info("Signal %s ring %d/%d reached %d new user(s)",
                        signal_id, ring, run.ring_count, len(new_matches))
        except Exception:
            logger.exception("Signal %s ring %d failed", signal_id, ring)
        finally:
            with self._runs_lock:
                run.completed_rings.add(ring)

    def _notify(self, signal_id: str, sender_id: str, match):
        try:
            self._notifier.notify(
                receiver_id=match.user_id,
                sender_id=sender_id,
                signal_id=signal_id,
                distance=match.distance,
                direction=match.direction,
            )
        except DeliveryError as e:
            logger.warning("Push for signal %s to %s failed: %s", signal_id, match.user_id, e)
        except Exception:
            logger.exception("Push for signal %s to %s failed", signal_id, match.user_id)

    # ---------------------- Expiry & Control ----------------------

    def _expire(self, signal_id: str) -> bool:
        with self._runs_lock:
            self._runs.pop(signal_id, None)
        updated = Signal.objects.filter(
            id=signal_id,
            status__in=[Signal.STATUS_PENDING, Signal.STATUS_ACTIVE],
        ).update(status=Signal.STATUS_EXPIRED)
        if updated:
            logger.info("Signal %s expired", signal_id)
        return bool(updated)

    def cancel(self, signal_id) -> bool:
        """Stop a run's pending jobs and expire the signal now."""
        key = str(signal_id)
        if not Signal.objects.filter(id=key).exists():
            raise SignalNotFound(f"Signal not found: {signal_id}")
        cancelled = self._scheduler.cancel(key)
        logger.info("Signal %s cancelled (%d pending job(s) dropped)", key, cancelled)
        return self._expire(key)

    def active_runs(self) -> Dict[str, PropagationRun]:
        with self._runs_lock:
            return dict(self._runs)

    # ---------------------- Queries ----------------------

    def received_signals(self, user_id, now: Optional[datetime] = None) -> List[SignalReceipt]:
        """Receipts for the user within SIGNAL_RECEIVED_WINDOW_HOURS, newest first."""
        user = require_user(user_id)
        now = now or self._clock()
        window = timedelta(hours=getattr(settings, "SIGNAL_RECEIVED_WINDOW_HOURS", 24))
        return list(
            SignalReceipt.objects.select_related("signal")
            .filter(receiver=user, received_at__gte=now - window)
            .order_by("-received_at")
        )
