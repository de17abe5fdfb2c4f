import base64
from datetime import timedelta
from unittest.mock import MagicMock

from django.core.management import call_command
from django.test import TestCase, SimpleTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory

from accounts.directory import UserNotFound
from accounts.models import User
from common.validation import InvalidDistance, InvalidLocation
from .crypto import (
	DecryptionFailed,
	EncryptionKeyMissing,
	LocationCodec,
	generate_key,
	load_key,
)
from .models import UserLocation
from .store import LocationNotFound, LocationStore
from .tasks import purge_expired_locations_task
from .views import nearby_users, update_location


ORIGIN = (37.7749, -122.4194)
# Degrees of latitude per mile
LAT_PER_MILE = 1 / 69.0976


def north_of(origin, miles):
	return origin[0] + miles * LAT_PER_MILE, origin[1]


def make_codec():
	return LocationCodec(load_key(generate_key()))


class LocationCodecTests(SimpleTestCase):
	def setUp(self):
		self.codec = make_codec()

	def test_round_trip_keeps_precision(self):
		blob = self.codec.encrypt(37.7749123456)
		self.assertAlmostEqual(self.codec.decrypt(blob), 37.7749123456, places=9)

	def test_fresh_nonce_per_encryption(self):
		self.assertNotEqual(self.codec.encrypt(1.0), self.codec.encrypt(1.0))

	def test_tampered_blob_rejected(self):
		raw = bytearray(base64.b64decode(self.codec.encrypt(12.5)))
		raw[14] ^= 0x01
		with self.assertRaises(DecryptionFailed):
			self.codec.decrypt(base64.b64encode(bytes(raw)).decode("ascii"))

	def test_wrong_key_rejected(self):
		blob = self.codec.encrypt(12.5)
		with self.assertRaises(DecryptionFailed):
			make_codec().decrypt(blob)

	def test_malformed_blobs_rejected(self):
		for blob in ["not base64!!", base64.b64encode(b"short").decode("ascii"), ""]:
			with self.assertRaises(DecryptionFailed):
				self.codec.decrypt(blob)

	def test_load_key_requires_32_bytes(self):
		with self.assertRaises(EncryptionKeyMissing):
			load_key("")
		with self.assertRaises(EncryptionKeyMissing):
			load_key(base64.b64encode(b"too short").decode("ascii"))

	@override_settings(LOCATION_ENCRYPTION_KEY="", LOCATION_ALLOW_EPHEMERAL_KEY=False)
	def test_missing_key_fails_fast(self):
		with self.assertRaises(EncryptionKeyMissing):
			LocationCodec.from_settings()

	@override_settings(LOCATION_ENCRYPTION_KEY="", LOCATION_ALLOW_EPHEMERAL_KEY=True)
	def test_ephemeral_key_when_allowed(self):
		codec = LocationCodec.from_settings()
		self.assertEqual(codec.decrypt(codec.encrypt(-45.0)), -45.0)


class LocationStoreTests(TestCase):
	def setUp(self):
		self.publisher = MagicMock()
		self.store = LocationStore(make_codec(), publisher=self.publisher)
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.bob = User.objects.create_user(username='bob', password='pass1234')
		self.carol = User.objects.create_user(username='carol', password='pass1234')

	def test_update_replaces_previous_record(self):
		self.store.update(self.alice.id, *ORIGIN)
		self.store.update(self.alice.id, 10.0, 20.0)

		self.assertEqual(UserLocation.objects.filter(user=self.alice).count(), 1)
		self.assertEqual(self.store.get_location(self.alice.id), (10.0, 20.0))

	def test_update_stores_ciphertext_and_ttl(self):
		record = self.store.update(self.alice.id, *ORIGIN)

		self.assertNotIn("37.77", record.encrypted_latitude)
		self.assertAlmostEqual(
			(record.expires_at - record.created_at).total_seconds(), 24 * 3600
		)

	def test_update_publishes_after_commit(self):
		with self.captureOnCommitCallbacks(execute=True):
			self.store.update(self.alice.id, *ORIGIN)

		self.publisher.assert_called_once()
		event = self.publisher.call_args[0][0]
		self.assertEqual(event.user_id, str(self.alice.id))
		self.assertEqual((event.latitude, event.longitude), ORIGIN)

	def test_publish_failure_does_not_reach_caller(self):
		self.publisher.side_effect = RuntimeError("hub down")
		with self.captureOnCommitCallbacks(execute=True):
			self.store.update(self.alice.id, *ORIGIN)
		self.assertTrue(UserLocation.objects.filter(user=self.alice).exists())

	def test_update_validates_input(self):
		with self.assertRaises(InvalidLocation):
			self.store.update(self.alice.id, 95.0, 0.0)
		with self.assertRaises(UserNotFound):
			self.store.update("00000000-0000-0000-0000-000000000000", *ORIGIN)

	def test_nearby_sorted_and_excludes_caller(self):
		self.store.update(self.alice.id, *ORIGIN)
		self.store.update(self.bob.id, *north_of(ORIGIN, 3))
		self.store.update(self.carol.id, *north_of(ORIGIN, 1))

		results = self.store.nearby_users(*ORIGIN, max_distance=5, exclude_user_id=self.alice.id)

		self.assertEqual([r.user_id for r in results], [str(self.carol.id), str(self.bob.id)])
		self.assertEqual(results[0].direction, "N")
		self.assertAlmostEqual(results[0].distance, 1, delta=0.05)

	def test_band_filter(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 0.5))
		self.store.update(self.carol.id, *north_of(ORIGIN, 1.5))

		results = self.store.nearby_users(*ORIGIN, max_distance=2, min_distance=1)

		self.assertEqual([r.user_id for r in results], [str(self.carol.id)])

	def test_exclusive_upper_bound(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 1.5))
		distance = self.store.nearby_users(*ORIGIN, max_distance=5)[0].distance

		self.assertEqual(len(self.store.nearby_users(*ORIGIN, max_distance=distance)), 1)
		self.assertEqual(
			len(self.store.nearby_users(*ORIGIN, max_distance=distance, include_max=False)), 0
		)

	def test_expired_records_are_invisible(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 1))
		later = timezone.now() + timedelta(hours=25)

		self.assertEqual(self.store.nearby_users(*ORIGIN, max_distance=5, now=later), [])
		with self.assertRaises(LocationNotFound):
			self.store.get_location(self.bob.id, now=later)

	def test_corrupt_record_is_skipped(self):
		self.store.update(self.bob.id, *north_of(ORIGIN, 1))
		self.store.update(self.carol.id, *north_of(ORIGIN, 2))
		UserLocation.objects.filter(user=self.bob).update(encrypted_latitude="garbage")

		with self.assertLogs('locations.store', level='ERROR'):
			results = self.store.nearby_users(*ORIGIN, max_distance=5)

		self.assertEqual([r.user_id for r in results], [str(self.carol.id)])

	def test_nearby_for_user_uses_own_location_and_unit(self):
		self.alice.distance_unit = 'km'
		self.alice.save()
		self.store.update(self.alice.id, *ORIGIN)
		self.store.update(self.bob.id, *north_of(ORIGIN, 1))

		results = self.store.nearby_users_for(self.alice.id, 5)

		self.assertEqual(len(results), 1)
		self.assertAlmostEqual(results[0].distance, 1.609, delta=0.05)

	def test_nearby_for_user_errors(self):
		with self.assertRaises(LocationNotFound):
			self.store.nearby_users_for(self.alice.id, 5)
		self.store.update(self.alice.id, *ORIGIN)
		with self.assertRaises(InvalidDistance):
			self.store.nearby_users_for(self.alice.id, 50)

	def test_purge_expired(self):
		self.store.update(self.alice.id, *ORIGIN)
		self.store.update(self.bob.id, *ORIGIN)
		UserLocation.objects.filter(user=self.bob).update(expires_at=timezone.now() - timedelta(minutes=1))

		self.assertEqual(self.store.purge_expired(), 1)
		self.assertEqual(UserLocation.objects.count(), 1)


class LocationApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.bob = User.objects.create_user(username='bob', password='pass1234')

	def _update(self, payload):
		request = self.factory.post('/api/locations/update/', payload, format='json')
		return update_location(request)

	def test_update_location(self):
		response = self._update({'userID': str(self.alice.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1]})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['userID'], str(self.alice.id))
		self.assertTrue(UserLocation.objects.filter(user=self.alice).exists())

	def test_update_location_errors(self):
		response = self._update({'userID': str(self.alice.id), 'latitude': 120, 'longitude': 0})
		self.assertEqual(response.status_code, 400)

		response = self._update({'userID': str(self.alice.id), 'latitude': 10})
		self.assertEqual(response.status_code, 400)

		response = self._update({'userID': '00000000-0000-0000-0000-000000000000', 'latitude': 10, 'longitude': 10})
		self.assertEqual(response.status_code, 404)

	def test_nearby_users(self):
		self._update({'userID': str(self.alice.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1]})
		lat, lng = north_of(ORIGIN, 2)
		self._update({'userID': str(self.bob.id), 'latitude': lat, 'longitude': lng})

		request = self.factory.get('/api/locations/nearby/%s/' % self.alice.id, {'distance': 5})
		response = nearby_users(request, user_id=self.alice.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['users'][0]['userID'], str(self.bob.id))
		self.assertEqual(response.data['users'][0]['direction'], 'N')

	def test_nearby_users_errors(self):
		request = self.factory.get('/api/locations/nearby/%s/' % self.alice.id)
		self.assertEqual(nearby_users(request, user_id=self.alice.id).status_code, 404)

		self._update({'userID': str(self.alice.id), 'latitude': ORIGIN[0], 'longitude': ORIGIN[1]})
		request = self.factory.get('/api/locations/nearby/%s/' % self.alice.id, {'distance': 50})
		self.assertEqual(nearby_users(request, user_id=self.alice.id).status_code, 400)


class LocationMaintenanceTests(TestCase):
	def setUp(self):
		self.store = LocationStore(make_codec())
		self.alice = User.objects.create_user(username='alice', password='pass1234')
		self.store.update(self.alice.id, *ORIGIN)
		UserLocation.objects.update(expires_at=timezone.now() - timedelta(seconds=1))

	def test_purge_task(self):
		self.assertEqual(purge_expired_locations_task(), 1)
		self.assertFalse(UserLocation.objects.exists())

	def test_purge_command_dry_run_keeps_rows(self):
		call_command('purge_expired_locations', '--dry-run')
		self.assertEqual(UserLocation.objects.count(), 1)

	def test_purge_command(self):
		call_command('purge_expired_locations')
		self.assertFalse(UserLocation.objects.exists())
