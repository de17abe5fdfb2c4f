import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock

from django.test import TestCase, SimpleTestCase
from django.utils import timezone

from accounts.models import User
from common.validation import InvalidDistance, InvalidLocation
from locations.crypto import LocationCodec, generate_key, load_key
from locations.store import LocationStore, NearbyUser
from signaling.models import Signal, SignalReceipt
from services.propagation import (
	CooldownActive,
	DeliveryError,
	ManualScheduler,
	NotAuthorized,
	SignalNotFound,
	SignalPropagationEngine,
	ThreadingScheduler,
	UserNotFound,
	UserOffline,
	expire_stale_signals,
)
from services.propagation.engine import ring_band, ring_count


ORIGIN = (37.7749, -122.4194)
LAT_PER_MILE = 1 / 69.0976


def north_of(origin, miles):
	return origin[0] + miles * LAT_PER_MILE, origin[1]


class FakeNotifier:
	def __init__(self):
		self.calls = []

	def notify(self, **kwargs):
		self.calls.append(kwargs)


class SlowNotifier(FakeNotifier):
	def notify(self, **kwargs):
		time.sleep(0.5)
		super().notify(**kwargs)


class InlineExecutor(Executor):
	"""Runs submitted calls immediately so ring tests stay deterministic."""

	def submit(self, fn, *args, **kwargs):
		future = Future()
		try:
			future.set_result(fn(*args, **kwargs))
		except Exception as e:
			future.set_exception(e)
		return future


class RingMathTests(SimpleTestCase):
	def test_ring_count(self):
		self.assertEqual(ring_count(0.4), 1)
		self.assertEqual(ring_count(1), 1)
		self.assertEqual(ring_count(2.5), 2)
		self.assertEqual(ring_count(10), 10)

	def test_bands_are_half_open_except_last(self):
		self.assertEqual(ring_band(1, 3, 3.0), (0.0, 1.0, False))
		self.assertEqual(ring_band(2, 3, 3.0), (1.0, 2.0, False))
		self.assertEqual(ring_band(3, 3, 3.0), (2.0, 3.0, True))
		self.assertEqual(ring_band(2, 2, 2.7), (1.0, 2.7, True))
		self.assertEqual(ring_band(1, 1, 0.5), (0.0, 0.5, True))


class SchedulerTests(SimpleTestCase):
	def test_manual_scheduler_runs_in_due_order(self):
		scheduler = ManualScheduler()
		ran = []
		scheduler.schedule("k", 2, ran.append, "second")
		scheduler.schedule("k", 1, ran.append, "first")
		scheduler.schedule("other", 5, ran.append, "later")

		self.assertEqual(scheduler.advance(2), 2)
		self.assertEqual(ran, ["first", "second"])
		self.assertEqual(scheduler.pending("other"), 1)

	def test_manual_scheduler_cancel(self):
		scheduler = ManualScheduler()
		ran = []
		scheduler.schedule("k", 1, ran.append, "x")

		self.assertEqual(scheduler.cancel("k"), 1)
		scheduler.advance(10)
		self.assertEqual(ran, [])
		self.assertEqual(scheduler.pending("k"), 0)

	def test_threading_scheduler_runs_job(self):
		scheduler = ThreadingScheduler()
		done = threading.Event()
		scheduler.schedule("k", 0.01, done.set)

		self.assertTrue(done.wait(2))

	def test_threading_scheduler_cancel(self):
		scheduler = ThreadingScheduler()
		done = threading.Event()
		scheduler.schedule("k", 0.5, done.set)
		self.assertEqual(scheduler.pending("k"), 1)

		self.assertEqual(scheduler.cancel("k"), 1)
		self.assertFalse(done.wait(0.8))
		self.assertEqual(scheduler.pending("k"), 0)


class PropagationEngineTests(TestCase):
	def setUp(self):
		self.store = LocationStore(LocationCodec(load_key(generate_key())))
		self.notifier = FakeNotifier()
		self.scheduler = ManualScheduler()
		self.engine = SignalPropagationEngine(
			store=self.store,
			notifier=self.notifier,
			scheduler=self.scheduler,
			cooldown_seconds=3600,
			lifetime_seconds=600,
			max_distance=10,
			ring_interval=1.0,
			push_executor=InlineExecutor(),
		)
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.bob = User.objects.create_user(username='bob', password='pass1234')
		self.carol = User.objects.create_user(username='carol', password='pass1234')

	def _send(self, user, latitude=ORIGIN[0], longitude=ORIGIN[1], max_distance=None):
		with self.captureOnCommitCallbacks(execute=True):
			return self.engine.send(user.id, latitude, longitude, max_distance)

	def _respond(self, signal, user, max_distance=None):
		with self.captureOnCommitCallbacks(execute=True):
			return self.engine.respond(signal.id, user.id, *ORIGIN, max_distance)

	def test_nearby_user_receives_one_receipt(self):
		self.store.update(self.alice.id, *ORIGIN)
		self.store.update(self.bob.id, 37.7849, -122.4194)

		signal = self._send(self.alice, max_distance=2)
		self.scheduler.advance(2)

		receipts = SignalReceipt.objects.filter(signal=signal)
		self.assertEqual(receipts.count(), 1)
		receipt = receipts.get()
		self.assertEqual(receipt.receiver, self.bob)
		self.assertEqual(receipt.direction, "N")
		self.assertTrue(0.5 < receipt.distance < 1.5)
		self.assertEqual(len(self.notifier.calls), 1)
		self.assertEqual(self.notifier.calls[0]["receiver_id"], str(self.bob.id))

	def test_signal_defaults(self):
		signal = self._send(self.alice)

		self.assertEqual(signal.status, Signal.STATUS_ACTIVE)
		self.assertEqual(signal.max_distance, 10.0)
		self.assertEqual(signal.distance_unit, 'mile')
		self.assertEqual((signal.expires_at - signal.sent_at).total_seconds(), 600)
		self.assertEqual(self.scheduler.pending(str(signal.id)), 11)

	def test_rings_fire_one_per_second(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		self.store.update(self.carol.id, *north_of(ORIGIN, 1.5))
		signal = self._send(self.alice, max_distance=3)

		self.scheduler.advance(0.5)
		self.assertFalse(SignalReceipt.objects.filter(signal=signal).exists())

		self.scheduler.advance(0.5)
		self.assertEqual(
			list(SignalReceipt.objects.filter(signal=signal).values_list('receiver_id', flat=True)),
			[self.bob.id],
		)

		self.scheduler.advance(1)
		self.assertEqual(SignalReceipt.objects.filter(signal=signal).count(), 2)

	def test_last_ring_reaches_max_distance(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 2.3))
		self.store.update(self.carol.id, *north_of(ORIGIN, 2.7))
		signal = self._send(self.alice, max_distance=2.5)

		self.scheduler.advance(2)

		self.assertEqual(
			list(SignalReceipt.objects.filter(signal=signal).values_list('receiver_id', flat=True)),
			[self.bob.id],
		)

	def test_receiver_moving_outward_is_not_notified_twice(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		signal = self._send(self.alice, max_distance=3)

		self.scheduler.advance(1)
		self.store.update(self.bob.id, *north_of(ORIGIN, 1.5))
		self.scheduler.advance(2)

		self.assertEqual(SignalReceipt.objects.filter(signal=signal, receiver=self.bob).count(), 1)
		self.assertEqual(len(self.notifier.calls), 1)

	def test_sender_never_receives_own_signal(self):
		self.store.update(self.alice.id, *ORIGIN)
		signal = self._send(self.alice, max_distance=1)
		self.scheduler.advance(1)

		self.assertFalse(SignalReceipt.objects.filter(signal=signal).exists())

	def test_send_validation(self):
		with self.assertRaises(InvalidLocation):
			self.engine.send(self.alice.id, 91, 0)
		with self.assertRaises(InvalidDistance):
			self.engine.send(self.alice.id, *ORIGIN, 10.5)
		with self.assertRaises(InvalidDistance):
			self.engine.send(self.alice.id, *ORIGIN, 0)
		with self.assertRaises(UserNotFound):
			self.engine.send("00000000-0000-0000-0000-000000000000", *ORIGIN)

		self.alice.is_offline = True
		self.alice.save()
		with self.assertRaises(UserOffline):
			self.engine.send(self.alice.id, *ORIGIN)
		self.assertFalse(Signal.objects.exists())

	def test_cooldown_blocks_second_signal(self):
		self._send(self.alice)

		with self.assertRaises(CooldownActive) as ctx:
			self._send(self.alice)

		self.assertTrue(3590 <= ctx.exception.remaining_seconds <= 3600)
		self.assertEqual(Signal.objects.filter(sender=self.alice).count(), 1)

	def test_cooldown_only_counts_active_signals(self):
		self._send(self.alice)
		self.scheduler.advance(600)

		signal = self._send(self.alice)

		self.assertEqual(signal.status, Signal.STATUS_ACTIVE)

	def test_respond_links_signal_and_skips_cooldown(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		original = self._send(self.alice, max_distance=1)
		self.scheduler.advance(1)
		# Bob is inside his own cooldown window
		self._send(self.bob)

		response = self._respond(original, self.bob)

		self.assertEqual(response.response_to, original)
		self.assertEqual(response.sender, self.bob)
		receipt = SignalReceipt.objects.get(signal=original, receiver=self.bob)
		self.assertTrue(receipt.responded)
		self.assertIsNotNone(receipt.responded_at)

	def test_respond_requires_receipt(self):
		original = self._send(self.alice, max_distance=1)
		self.scheduler.advance(1)

		with self.assertRaises(NotAuthorized):
			self._respond(original, self.carol)
		with self.assertRaises(NotAuthorized):
			self.engine.respond("not-a-uuid", self.carol.id, *ORIGIN)

	def test_expiry_job_expires_signal(self):
		signal = self._send(self.alice, max_distance=2)
		self.scheduler.advance(2)

		run = self.engine.active_runs()[str(signal.id)]
		self.assertTrue(run.finished)

		self.scheduler.advance(598)
		signal.refresh_from_db()
		self.assertEqual(signal.status, Signal.STATUS_EXPIRED)
		self.assertEqual(self.engine.active_runs(), {})

	def test_cancel_stops_remaining_rings(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 1.5))
		signal = self._send(self.alice, max_distance=3)
		self.scheduler.advance(1)

		self.assertTrue(self.engine.cancel(signal.id))
		self.scheduler.advance(5)

		signal.refresh_from_db()
		self.assertEqual(signal.status, Signal.STATUS_EXPIRED)
		self.assertFalse(SignalReceipt.objects.filter(signal=signal).exists())
		self.assertEqual(self.scheduler.pending(str(signal.id)), 0)

		with self.assertRaises(SignalNotFound):
			self.engine.cancel("00000000-0000-0000-0000-000000000000")

	def test_failing_ring_does_not_stop_later_rings(self):
		store = MagicMock()
		store.nearby_users.side_effect = [
			RuntimeError("database unavailable"),
			[NearbyUser(user_id=str(self.bob.id), distance=1.5, direction="E", last_seen=timezone.now())],
		]
		engine = SignalPropagationEngine(
			store, self.notifier, self.scheduler, max_distance=10, push_executor=InlineExecutor()
		)

		with self.captureOnCommitCallbacks(execute=True):
			signal = engine.send(self.alice.id, *ORIGIN, 2)
		with self.assertLogs('services.propagation.engine', level='ERROR'):
			self.scheduler.advance(2)

		self.assertTrue(SignalReceipt.objects.filter(signal=signal, receiver=self.bob).exists())
		self.assertEqual(engine.active_runs()[str(signal.id)].completed_rings, {1, 2})

	def test_notifier_failure_is_logged(self):
		self.notifier.notify = MagicMock(side_effect=RuntimeError("push down"))
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		signal = self._send(self.alice, max_distance=1)

		with self.assertLogs('services.propagation.engine', level='WARNING'):
			self.scheduler.advance(1)

		self.assertTrue(SignalReceipt.objects.filter(signal=signal).exists())

	def test_delivery_error_is_logged_as_warning(self):
		self.notifier.notify = MagicMock(side_effect=DeliveryError("broker down"))
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		self._send(self.alice, max_distance=1)

		with self.assertLogs('services.propagation.engine', level='WARNING') as logs:
			self.scheduler.advance(1)

		self.assertEqual([r.levelname for r in logs.records if 'Push' in r.getMessage()], ['WARNING'])

	def test_slow_notifier_does_not_hold_up_the_ring(self):
		notifier = SlowNotifier()
		pool = ThreadPoolExecutor(max_workers=4)
		engine = SignalPropagationEngine(
			self.store, notifier, self.scheduler, max_distance=10, push_executor=pool
		)
		receivers = [self.bob, self.carol] + [
			User.objects.create_user(username=f'user{i}', password='pass1234') for i in range(2)
		]
		for i, user in enumerate(receivers):
			self.store.update(user.id, *north_of(ORIGIN, 0.2 + 0.15 * i))

		with self.captureOnCommitCallbacks(execute=True):
			signal = engine.send(self.alice.id, *ORIGIN, 1)
		started = time.monotonic()
		self.scheduler.advance(1)
		elapsed = time.monotonic() - started

		self.assertLess(elapsed, 1.0)
		self.assertEqual(SignalReceipt.objects.filter(signal=signal).count(), 4)
		self.assertEqual(engine.active_runs()[str(signal.id)].reached, 4)

		pool.shutdown(wait=True)
		self.assertEqual(
			sorted(call['receiver_id'] for call in notifier.calls),
			sorted(str(user.id) for user in receivers),
		)

	def test_received_signals_window(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		signal = self._send(self.alice, max_distance=1)
		self.scheduler.advance(1)
		old = Signal.objects.create(
			sender=self.carol, latitude=0, longitude=0, max_distance=1,
			status=Signal.STATUS_EXPIRED,
			sent_at=timezone.now() - timedelta(days=2),
			expires_at=timezone.now() - timedelta(days=2),
		)
		SignalReceipt.objects.create(
			signal=old, receiver=self.bob, distance=0.2, direction="S",
			received_at=timezone.now() - timedelta(hours=25),
		)

		receipts = self.engine.received_signals(self.bob.id)

		self.assertEqual([r.signal_id for r in receipts], [signal.id])

	def test_expire_stale_signals(self):
		now = timezone.now()
		stale = Signal.objects.create(
			sender=self.alice, latitude=0, longitude=0, max_distance=1,
			status=Signal.STATUS_ACTIVE,
			sent_at=now - timedelta(minutes=20), expires_at=now - timedelta(minutes=10),
		)
		fresh = Signal.objects.create(
			sender=self.bob, latitude=0, longitude=0, max_distance=1,
			status=Signal.STATUS_ACTIVE,
			sent_at=now, expires_at=now + timedelta(minutes=10),
		)

		self.assertEqual(expire_stale_signals(), 1)
		stale.refresh_from_db()
		fresh.refresh_from_db()
		self.assertEqual(stale.status, Signal.STATUS_EXPIRED)
		self.assertEqual(fresh.status, Signal.STATUS_ACTIVE)
