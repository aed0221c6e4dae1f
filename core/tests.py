"""
Tests for listing helpers, the exception handler and rate limiting.
"""
from datetime import date
from unittest.mock import MagicMock, patch

import redis
from django.test import SimpleTestCase, override_settings
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory

from core import rate_limiting
from core.exceptions import (
    BusinessRuleError,
    InsufficientStockError,
    InventoryValidationError,
    RecordNotFoundError,
    api_exception_handler,
)
from core.listing import page_count, parse_date, parse_int
from core.rate_limiting import get_redis_client, rate_limit


class ListingHelpersTestCase(SimpleTestCase):

    def test_parse_int(self):
        self.assertEqual(parse_int('3', 1), 3)
        self.assertEqual(parse_int('abc', 1), 1)
        self.assertEqual(parse_int(None, 10), 10)
        self.assertEqual(parse_int('2.5', 10), 10)

    def test_parse_date(self):
        self.assertEqual(parse_date('2025-03-14'), date(2025, 3, 14))
        self.assertIsNone(parse_date('2025-02-30'))
        self.assertIsNone(parse_date('14/03/2025'))
        self.assertIsNone(parse_date(''))
        self.assertIsNone(parse_date(None))

    def test_page_count(self):
        self.assertEqual(page_count(15, 10), 2)
        self.assertEqual(page_count(20, 10), 2)
        self.assertEqual(page_count(21, 10), 3)
        self.assertEqual(page_count(0, 10), 1)


class ExceptionHandlerTestCase(SimpleTestCase):

    def handle(self, exc):
        return api_exception_handler(exc, {'view': None})

    def test_not_found(self):
        response = self.handle(RecordNotFoundError('Sale', 42))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data, {'error': 'Not Found', 'detail': 'Sale 42 not found'})

    def test_validation_error(self):
        response = self.handle(InventoryValidationError('At least one item is required'))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Validation Error')

    def test_business_rule_errors(self):
        response = self.handle(BusinessRuleError('Supplier has purchases and cannot be deleted.'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['error'], 'Business Rule Error')

        response = self.handle(InsufficientStockError(1, 'B-1', 6, 5))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.data['detail'],
            'Insufficient stock for product B-1: requested 6, available 5'
        )

    def test_unexpected_error_is_hidden(self):
        with self.assertLogs('core.exceptions', level='ERROR'):
            response = self.handle(RuntimeError('connection string with password'))

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data['error'], 'Server Error')
        self.assertNotIn('password', response.data['detail'])


class LimitedView:

    @rate_limit(max_requests=2, window_seconds=60)
    def post(self, request):
        return Response({'ok': True})


@override_settings(RATE_LIMIT_ENABLED=True)
class RateLimitTestCase(SimpleTestCase):

    def setUp(self):
        self.request = APIRequestFactory().post('/api/auth/login/', REMOTE_ADDR='10.0.0.7')
        self.client_mock = MagicMock()
        self.client_mock.ttl.return_value = 42

    def call(self):
        with patch('core.rate_limiting.get_redis_client', return_value=self.client_mock):
            return LimitedView().post(self.request)

    def test_within_limit(self):
        self.client_mock.incr.return_value = 1

        response = self.call()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['X-RateLimit-Remaining'], '1')
        self.client_mock.incr.assert_called_once_with('rate_limit:LimitedView:10.0.0.7')
        self.client_mock.expire.assert_called_once_with('rate_limit:LimitedView:10.0.0.7', 60)

    def test_over_limit(self):
        self.client_mock.incr.return_value = 3

        response = self.call()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response['Retry-After'], '42')

    def test_redis_error_fails_open(self):
        self.client_mock.incr.side_effect = redis.ConnectionError('down')

        response = self.call()

        self.assertEqual(response.status_code, 200)

    @override_settings(RATE_LIMIT_ENABLED=False)
    def test_disabled(self):
        response = self.call()

        self.assertEqual(response.status_code, 200)
        self.client_mock.incr.assert_not_called()


@override_settings(RATE_LIMIT_ENABLED=True)
class RedisUnavailableTestCase(SimpleTestCase):
    """While Redis is down the connection is not retried on every request."""

    def setUp(self):
        self.reset_client()
        self.addCleanup(self.reset_client)
        self.request = APIRequestFactory().post('/api/auth/login/', REMOTE_ADDR='10.0.0.7')
        self.client_mock = MagicMock()
        self.client_mock.ping.side_effect = redis.ConnectionError('refused')

    @staticmethod
    def reset_client():
        rate_limiting._redis_client = None
        rate_limiting._redis_retry_at = 0.0

    def test_failed_connection_is_remembered(self):
        with patch.object(redis.Redis, 'from_url', return_value=self.client_mock) as from_url:
            responses = [LimitedView().post(self.request) for _ in range(3)]

        self.assertEqual([response.status_code for response in responses], [200, 200, 200])
        self.assertEqual(from_url.call_count, 1)
        self.assertEqual(self.client_mock.ping.call_count, 1)

    def test_reconnects_after_backoff(self):
        with patch.object(redis.Redis, 'from_url', return_value=self.client_mock):
            self.assertIsNone(get_redis_client())

            # Backoff expired and Redis is back
            rate_limiting._redis_retry_at = 0.0
            self.client_mock.ping.side_effect = None

            self.assertIs(get_redis_client(), self.client_mock)

        self.assertEqual(self.client_mock.ping.call_count, 2)
