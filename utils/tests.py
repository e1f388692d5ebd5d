"""
Tests for the MongoDB API audit log and its middleware.
MongoDB is never contacted; pymongo access is mocked.
"""
import json
from unittest.mock import MagicMock, patch
from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase, override_settings

from utils import mongo
from utils.middleware import APILoggingMiddleware


class MongoLoggingTests(SimpleTestCase):
    """Test log_api_request and connection handling."""

    def setUp(self):
        mongo._mongo_client = None
        mongo._mongo_db = None
        mongo._mongo_available = None

    def tearDown(self):
        mongo._mongo_client = None
        mongo._mongo_db = None
        mongo._mongo_available = None

    @override_settings(API_LOGGING_ENABLED=False)
    def test_disabled_logging_never_connects(self):
        """Test no client is created when API logging is disabled."""
        with patch('utils.mongo.MongoClient') as client_class:
            self.assertIsNone(mongo.get_mongo_db())
        client_class.assert_not_called()

    @override_settings(API_LOGGING_ENABLED=True)
    def test_unreachable_mongodb_is_remembered(self):
        """Test a failed connection disables logging without raising."""
        from pymongo.errors import ServerSelectionTimeoutError

        client = MagicMock()
        client.admin.command.side_effect = ServerSelectionTimeoutError('down')
        with patch('utils.mongo.MongoClient', return_value=client) as client_class:
            self.assertIsNone(mongo.get_mongo_db())
            self.assertIsNone(mongo.get_mongo_db())

        self.assertEqual(client_class.call_count, 1)
        self.assertFalse(mongo.is_mongodb_available())

    def test_log_entry_contents(self):
        """Test the stored document carries request metadata and conflicts."""
        db = MagicMock()
        with patch('utils.mongo.get_mongo_db', return_value=db):
            mongo.log_api_request(
                endpoint='/api/schedules/',
                method='POST',
                user_id=1,
                depot_id=2,
                request_params={'bus_id': 3},
                response_status=409,
                execution_time_ms=12.5,
                conflicts=['Bus B1 is already scheduled on Route R1 from 08:00 to 10:00'],
            )

        entry = db.api_logs.insert_one.call_args[0][0]
        self.assertEqual(entry['endpoint'], '/api/schedules/')
        self.assertEqual(entry['depot_id'], 2)
        self.assertEqual(entry['response_status'], 409)
        self.assertEqual(len(entry['conflicts']), 1)
        self.assertIn('timestamp', entry)

    def test_log_skipped_without_database(self):
        """Test logging is a no-op when MongoDB is unavailable."""
        with patch('utils.mongo.get_mongo_db', return_value=None):
            self.assertIsNone(mongo.log_api_request('/api/schedules/', 'GET', None, None, {}, 200, 1.0))


class APILoggingMiddlewareTests(SimpleTestCase):
    """Test which requests the middleware records."""

    def setUp(self):
        self.factory = RequestFactory()

    def _run(self, request, response):
        middleware = APILoggingMiddleware(lambda req: response)
        with patch('utils.middleware.log_api_request') as log:
            result = middleware(request)
        return result, log

    def test_schedule_write_logged_with_body(self):
        """Test write requests are logged with their JSON body."""
        request = self.factory.post('/api/schedules/', data=json.dumps({'bus_id': 3}),
                                    content_type='application/json')
        response = HttpResponse(status=201)

        result, log = self._run(request, response)

        self.assertIs(result, response)
        kwargs = log.call_args.kwargs
        self.assertEqual(kwargs['request_params'], {'bus_id': 3})
        self.assertEqual(kwargs['response_status'], 201)
        self.assertIsNone(kwargs['conflicts'])

    def test_conflict_response_records_conflicts(self):
        """Test 409 responses carry their conflict list into the log."""
        request = self.factory.post('/api/schedules/', data='{}', content_type='application/json')
        response = HttpResponse(status=409)
        response.data = {'error': 'Scheduling conflict', 'conflicts': ['Bus B1 is already scheduled']}

        _, log = self._run(request, response)

        self.assertEqual(log.call_args.kwargs['conflicts'], ['Bus B1 is already scheduled'])

    def test_query_params_flattened(self):
        """Test single-value query parameters are flattened."""
        request = self.factory.get('/api/fleet/routes/', {'date': '2024-06-01'})

        _, log = self._run(request, HttpResponse(status=200))

        self.assertEqual(log.call_args.kwargs['request_params'], {'date': '2024-06-01'})

    def test_other_endpoints_not_logged(self):
        """Test endpoints outside the scheduling API are not logged."""
        request = self.factory.get('/api/profile/')

        _, log = self._run(request, HttpResponse(status=200))

        log.assert_not_called()

    def test_logging_failure_does_not_affect_response(self):
        """Test an error while logging still returns the response."""
        request = self.factory.get('/api/schedules/')
        response = HttpResponse(status=200)
        middleware = APILoggingMiddleware(lambda req: response)

        with patch('utils.middleware.log_api_request', side_effect=RuntimeError('boom')):
            self.assertIs(middleware(request), response)
