import asyncio
import time
import uuid

from asgiref.sync import async_to_sync, sync_to_async
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TransactionTestCase
from django.utils import timezone

from common.events import LocationUpdate
from common.validation import InvalidDistance, InvalidLocation
from services.container import get_container
from .consumers.location_consumer import LocationStreamConsumer
from .hub import ProximitySubscriptionHub
from .notifications import notify_signal_received


ORIGIN = (37.7749, -122.4194)


class RecordingSender:
	"""Collects deliveries; raises for the listed connection ids."""

	def __init__(self, fail_for=(), delay=0):
		self.sent = []
		self.fail_for = set(fail_for)
		self.delay = delay

	async def __call__(self, connection_id, message):
		if self.delay:
			await asyncio.sleep(self.delay)
		if connection_id in self.fail_for:
			raise RuntimeError("socket closed")
		self.sent.append((connection_id, message))


def update_from(user_id, latitude, longitude):
	return LocationUpdate(
		user_id=str(user_id),
		latitude=latitude,
		longitude=longitude,
		timestamp=timezone.now(),
	)


class ProximitySubscriptionHubTests(SimpleTestCase):
	def setUp(self):
		self.sender = RecordingSender()
		self.hub = ProximitySubscriptionHub(sender=self.sender)

	def test_delivers_only_within_radius(self):
		self.hub.subscribe("near", "u-near", *ORIGIN, radius=5)
		self.hub.subscribe("far", "u-far", 37.0, -122.4194, radius=5)

		delivered = self.hub.broadcast(update_from("mover", 37.7849, -122.4194))

		self.assertEqual(delivered, 1)
		self.assertEqual([cid for cid, _ in self.sender.sent], ["near"])
		message = self.sender.sent[0][1]
		self.assertEqual(message["type"], "location_update")
		self.assertEqual(message["userID"], "mover")
		self.assertEqual(message["direction"], "N")
		self.assertAlmostEqual(message["distance"], 1.11, delta=0.05)
		self.assertIn("timestamp", message)

	def test_own_updates_are_not_echoed(self):
		self.hub.subscribe("conn", "u1", *ORIGIN, radius=5)

		self.assertEqual(self.hub.broadcast(update_from("u1", *ORIGIN)), 0)
		self.assertEqual(self.sender.sent, [])

	def test_failing_connection_does_not_affect_others(self):
		self.sender.fail_for.add("broken")
		self.hub.subscribe("broken", "u1", *ORIGIN, radius=5)
		self.hub.subscribe("healthy", "u2", *ORIGIN, radius=5)

		with self.assertLogs('realtime.hub', level='WARNING'):
			delivered = self.hub.broadcast(update_from("mover", *ORIGIN))

		self.assertEqual(delivered, 1)
		self.assertEqual([cid for cid, _ in self.sender.sent], ["healthy"])

	def test_resubscribe_replaces(self):
		self.hub.subscribe("conn", "u1", *ORIGIN, radius=5)
		self.hub.subscribe("conn", "u1", 10.0, 10.0, radius=1)

		self.assertEqual(self.hub.connection_count(), 1)
		self.assertEqual(self.hub.get("conn").latitude, 10.0)

	def test_unsubscribe_is_idempotent(self):
		self.hub.subscribe("conn", "u1", *ORIGIN, radius=5)

		self.assertTrue(self.hub.unsubscribe("conn"))
		self.assertFalse(self.hub.unsubscribe("conn"))
		self.assertEqual(self.hub.connection_count(), 0)
		self.assertFalse(self.hub.is_user_connected("u1"))

	def test_subscribe_validates(self):
		with self.assertRaises(InvalidLocation):
			self.hub.subscribe("conn", "u1", 100, 0, radius=5)
		with self.assertRaises(InvalidDistance):
			self.hub.subscribe("conn", "u1", *ORIGIN, radius=-1)

		capped = ProximitySubscriptionHub(sender=self.sender, max_radius=50)
		with self.assertRaises(InvalidDistance):
			capped.subscribe("conn", "u1", *ORIGIN, radius=51)

	def test_broadcast_without_subscribers(self):
		self.assertEqual(async_to_sync(self.hub.broadcast_async)(update_from("u1", *ORIGIN)), 0)

	def test_zero_radius_matches_only_the_centre(self):
		self.hub.subscribe("conn", "u1", 10.0, 10.0, radius=0)

		self.assertEqual(self.hub.broadcast(update_from("mover", 10.0, 10.0)), 1)
		self.assertEqual(self.hub.broadcast(update_from("mover", 10.001, 10.0)), 0)
		self.assertEqual(self.sender.sent[0][1]["distance"], 0)

	def test_publish_does_not_wait_for_delivery(self):
		slow = RecordingSender(delay=0.5)
		hub = ProximitySubscriptionHub(sender=slow)
		hub.subscribe("a", "u1", *ORIGIN, radius=5)
		hub.subscribe("b", "u2", *ORIGIN, radius=5)

		started = time.monotonic()
		future = hub.publish(update_from("mover", *ORIGIN))
		self.assertLess(time.monotonic() - started, 0.25)

		self.assertEqual(future.result(timeout=5), 2)
		self.assertEqual(len(slow.sent), 2)


class LocationStreamConsumerTests(TransactionTestCase):
	async def _connect(self):
		communicator = WebsocketCommunicator(LocationStreamConsumer.as_asgi(), "/ws/locations/stream/")
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		return communicator

	async def test_ping_pong(self):
		communicator = await self._connect()

		await communicator.send_json_to({"type": "ping"})
		response = await communicator.receive_json_from()

		self.assertEqual(response["type"], "pong")
		self.assertIn("timestamp", response)
		await communicator.disconnect()

	async def test_invalid_json_keeps_connection_open(self):
		communicator = await self._connect()

		await communicator.send_to(text_data="{not json")
		response = await communicator.receive_json_from()
		self.assertEqual(response["type"], "error")

		await communicator.send_json_to({"type": "ping"})
		self.assertEqual((await communicator.receive_json_from())["type"], "pong")
		await communicator.disconnect()

	async def test_unknown_and_incomplete_messages(self):
		communicator = await self._connect()

		await communicator.send_json_to({"type": "dance"})
		self.assertEqual((await communicator.receive_json_from())["type"], "error")

		await communicator.send_json_to({"type": "subscribe", "latitude": 1, "longitude": 1})
		response = await communicator.receive_json_from()
		self.assertEqual(response["type"], "error")
		self.assertIn("userID", response["message"])

		await communicator.send_json_to({"type": "subscribe", "userID": "u", "latitude": 91, "longitude": 1, "radius": 5})
		self.assertEqual((await communicator.receive_json_from())["type"], "error")
		await communicator.disconnect()

	async def test_subscribe_receives_updates_and_signals(self):
		hub = get_container().hub
		user_id = str(uuid.uuid4())
		communicator = await self._connect()

		await communicator.send_json_to({
			"type": "subscribe",
			"userID": user_id,
			"latitude": ORIGIN[0],
			"longitude": ORIGIN[1],
			"radius": 10,
		})
		confirmed = await communicator.receive_json_from()
		self.assertEqual(confirmed["type"], "subscription_confirmed")
		self.assertEqual(confirmed["userID"], user_id)
		self.assertTrue(hub.is_user_connected(user_id))

		delivered = await hub.broadcast_async(update_from("someone-else", 37.7849, -122.4194))
		self.assertGreaterEqual(delivered, 1)
		update = await communicator.receive_json_from()
		self.assertEqual(update["type"], "location_update")
		self.assertEqual(update["userID"], "someone-else")
		self.assertEqual(update["direction"], "N")

		await sync_to_async(notify_signal_received)(user_id, {
			"signalID": "sig-1",
			"senderID": "someone-else",
			"distance": 0.7,
			"direction": "S",
		})
		alert = await communicator.receive_json_from()
		self.assertEqual(alert["type"], "signal_received")
		self.assertEqual(alert["signalID"], "sig-1")
		self.assertIn("timestamp", alert)

		await communicator.disconnect()
		self.assertFalse(hub.is_user_connected(user_id))

	async def test_unsubscribe(self):
		hub = get_container().hub
		user_id = str(uuid.uuid4())
		communicator = await self._connect()

		await communicator.send_json_to({
			"type": "subscribe", "userID": user_id,
			"latitude": 0, "longitude": 0, "radius": 1,
		})
		await communicator.receive_json_from()
		await communicator.send_json_to({"type": "unsubscribe"})
		await communicator.send_json_to({"type": "ping"})

		self.assertEqual((await communicator.receive_json_from())["type"], "pong")
		self.assertFalse(hub.is_user_connected(user_id))
		await communicator.disconnect()
