from django.test import TestCase

from .directory import (
	UserNotFound,
	distance_unit_preference,
	get_user,
	is_offline,
	require_user,
)
from .models import User


class UserDirectoryTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='alice', password='pass1234', distance_unit='km')

	def test_lookup(self):
		self.assertEqual(get_user(self.user.id), self.user)
		self.assertEqual(get_user(str(self.user.id)), self.user)
		self.assertIsNone(get_user('not-a-uuid'))

	def test_preferences(self):
		self.assertFalse(is_offline(self.user.id))
		self.assertEqual(distance_unit_preference(self.user.id), 'km')

	def test_preferences_accept_user_instances(self):
		self.user.is_offline = True

		with self.assertNumQueries(0):
			self.assertTrue(is_offline(self.user))
			self.assertEqual(distance_unit_preference(self.user), 'km')

	def test_unknown_user_defaults(self):
		unknown = '00000000-0000-0000-0000-000000000000'
		self.assertTrue(is_offline(unknown))
		self.assertEqual(distance_unit_preference(unknown), 'mile')
		with self.assertRaises(UserNotFound):
			require_user(unknown)
