from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase, SimpleTestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory

from accounts.models import User
from services.propagation import DeliveryError
from .models import Signal, SignalReceipt
from .push import CeleryPushNotifier, deliver_signal_push, format_distance
from .tasks import send_signal_push_task, expire_stale_signals_task
from .views import received_signals, respond_to_signal, send_signal


ORIGIN = (37.7749, -122.4194)


def make_signal(sender, minutes_ago=0, status=Signal.STATUS_ACTIVE, **extra):
	sent_at = timezone.now() - timedelta(minutes=minutes_ago)
	return Signal.objects.create(
		sender=sender,
		latitude=ORIGIN[0],
		longitude=ORIGIN[1],
		max_distance=extra.pop('max_distance', 2),
		status=status,
		sent_at=sent_at,
		expires_at=sent_at + timedelta(minutes=10),
		**extra
	)


class SignalApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.bob = User.objects.create_user(username='bob', password='pass1234')

	def _send(self, payload):
		request = self.factory.post('/api/signals/', payload, format='json')
		return send_signal(request)

	def _payload(self, user, **overrides):
		payload = {'senderID': str(user.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1], 'maxDistance': 2}
		payload.update(overrides)
		return payload

	def test_send_signal(self):
		response = self._send(self._payload(self.alice))

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['senderID'], str(self.alice.id))
		self.assertEqual(response.data['status'], 'active')
		self.assertEqual(response.data['maxDistance'], 2.0)
		self.assertIsNone(response.data['responseTo'])

	def test_send_signal_validation_errors(self):
		self.assertEqual(self._send(self._payload(self.alice, latitude=95)).status_code, 400)
		self.assertEqual(self._send(self._payload(self.alice, maxDistance=12)).status_code, 400)
		self.assertEqual(self._send({'senderID': str(self.alice.id)}).status_code, 400)
		self.assertFalse(Signal.objects.exists())

	def test_send_signal_unknown_sender(self):
		payload = self._payload(self.alice, senderID='00000000-0000-0000-0000-000000000000')
		self.assertEqual(self._send(payload).status_code, 404)

	def test_send_signal_offline_sender(self):
		self.alice.is_offline = True
		self.alice.save()
		self.assertEqual(self._send(self._payload(self.alice)).status_code, 409)

	def test_send_signal_cooldown(self):
		make_signal(self.alice, minutes_ago=5)

		response = self._send(self._payload(self.alice))

		self.assertEqual(response.status_code, 429)
		self.assertTrue(3290 <= response.data['remaining_seconds'] <= 3300)

	def test_respond_requires_receipt(self):
		original = make_signal(self.alice)
		request = self.factory.post(
			'/api/signals/%s/respond/' % original.id,
			{'responderID': str(self.bob.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1]},
			format='json'
		)

		response = respond_to_signal(request, signal_id=original.id)

		self.assertEqual(response.status_code, 403)

	def test_respond_to_received_signal(self):
		original = make_signal(self.alice)
		SignalReceipt.objects.create(
			signal=original, receiver=self.bob, distance=0.7, direction='N', received_at=timezone.now()
		)
		request = self.factory.post(
			'/api/signals/%s/respond/' % original.id,
			{'responderID': str(self.bob.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1], 'maxDistance': 1},
			format='json'
		)

		response = respond_to_signal(request, signal_id=original.id)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['responseTo'], str(original.id))
		self.assertTrue(SignalReceipt.objects.get(signal=original, receiver=self.bob).responded)

	def test_received_signals(self):
		original = make_signal(self.alice)
		SignalReceipt.objects.create(
			signal=original, receiver=self.bob, distance=0.7, direction='NE', received_at=timezone.now()
		)
		request = self.factory.get('/api/signals/received/%s/' % self.bob.id)

		response = received_signals(request, user_id=self.bob.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		item = response.data['signals'][0]
		self.assertEqual(item['senderID'], str(self.alice.id))
		self.assertEqual(item['direction'], 'NE')
		self.assertFalse(item['responded'])


class FormatDistanceTests(SimpleTestCase):
	def test_miles(self):
		self.assertEqual(format_distance(2.345, 'mile'), '2.3 mi')
		self.assertEqual(format_distance(0.05, 'mile'), '264 ft')

	def test_kilometres(self):
		self.assertEqual(format_distance(3.0, 'km'), '3.0 km')
		self.assertEqual(format_distance(0.05, 'km'), '50 m')


class PushDeliveryTests(TestCase):
	def setUp(self):
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.bob = User.objects.create_user(
			username='bob', password='pass1234', device_token='a1b2c3d4e5f6', distance_unit='km'
		)

	@patch('realtime.notifications.notify_signal_received')
	def test_delivery_uses_receiver_unit(self, mock_notify):
		result = deliver_signal_push(self.bob.id, self.alice.id, 'sig-1', 1.0, 'N', unit='mile')

		self.assertTrue(result['delivered'])
		self.assertEqual(result['body'], '1.6 km N')
		mock_notify.assert_called_once()
		receiver_id, event = mock_notify.call_args[0]
		self.assertEqual(receiver_id, self.bob.id)
		self.assertEqual(event['signalID'], 'sig-1')
		self.assertEqual(event['unit'], 'km')

	@patch('realtime.notifications.notify_signal_received')
	def test_offline_receiver_is_skipped(self, mock_notify):
		self.bob.is_offline = True
		self.bob.save()

		result = deliver_signal_push(self.bob.id, self.alice.id, 'sig-1', 1.0, 'N')

		self.assertEqual(result, {'delivered': False, 'reason': 'offline'})
		mock_notify.assert_not_called()

	def test_unknown_receiver(self):
		result = deliver_signal_push('00000000-0000-0000-0000-000000000000', self.alice.id, 'sig-1', 1.0, 'N')
		self.assertEqual(result['reason'], 'receiver_not_found')

	@patch('signaling.tasks.send_signal_push_task.apply_async')
	def test_notifier_enqueues_task_without_retries(self, mock_apply):
		CeleryPushNotifier().notify(
			receiver_id=self.bob.id, sender_id=self.alice.id, signal_id='sig-1', distance=0.4, direction='W'
		)
		mock_apply.assert_called_once_with(
			args=(str(self.bob.id), str(self.alice.id), 'sig-1', 0.4, 'W'), retry=False
		)

	@patch('signaling.tasks.send_signal_push_task.apply_async', side_effect=ConnectionError('broker down'))
	def test_notifier_wraps_broker_errors(self, mock_apply):
		with self.assertRaises(DeliveryError) as ctx:
			CeleryPushNotifier().notify(
				receiver_id=self.bob.id, sender_id=self.alice.id, signal_id='sig-1', distance=0.4, direction='W'
			)
		self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

	@patch('signaling.push.deliver_signal_push', return_value={'delivered': True})
	def test_push_task_passes_signal_unit(self, mock_deliver):
		signal = make_signal(self.alice)

		send_signal_push_task(str(self.bob.id), str(self.alice.id), str(signal.id), 0.4, 'W')

		mock_deliver.assert_called_once_with(
			str(self.bob.id), str(self.alice.id), str(signal.id), 0.4, 'W', unit='mile'
		)


class SignalMaintenanceTests(TestCase):
	def setUp(self):
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.stale = make_signal(self.alice, minutes_ago=30)

	def test_expire_task(self):
		self.assertEqual(expire_stale_signals_task(), 1)
		self.stale.refresh_from_db()
		self.assertEqual(self.stale.status, Signal.STATUS_EXPIRED)

	def test_expire_command_dry_run(self):
		out = StringIO()
		call_command('expire_stale_signals', '--dry-run', stdout=out)

		self.assertIn('Would expire 1', out.getvalue())
		self.stale.refresh_from_db()
		self.assertEqual(self.stale.status, Signal.STATUS_ACTIVE)

	def test_expire_command(self):
		out = StringIO()
		call_command('expire_stale_signals', stdout=out)

		self.assertIn('Expired 1', out.getvalue())
