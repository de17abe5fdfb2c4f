from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory

from .views import health_check


class HealthCheckTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	@patch('app_backend.views.redis.Redis.from_url')
	def test_healthy(self, mock_redis):
		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'healthy')
		for service in ('database', 'redis', 'channels', 'celery', 'encryption'):
			self.assertEqual(response.data['services'][service], 'healthy')

	@patch('app_backend.views.redis.Redis.from_url')
	def test_redis_down_is_unhealthy(self, mock_redis):
		mock_redis.return_value.ping.side_effect = ConnectionError('refused')

		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.data['services']['redis'].startswith('unhealthy'))
