"""
Test suite for the core module
Tests: registration, login, session state and redirects, API client, cache invalidation, error payloads
"""
from unittest import mock

import requests
from django.core.cache import cache
from django.test import TestCase, SimpleTestCase
from rest_framework import status

from storefront.client import DashboardShell, StorefrontClient
from storefront.core import cache_utils
from storefront.core.cache_signals import suspend_cache_signals
from storefront.core.exceptions import (
    AuthFailure, RemoteWriteFailure, UploadFailure, ValidationFailure,
)
from storefront.core.models import User
from storefront.core.session import (
    DASHBOARD_PATH, SIGN_IN_PATH, Session, SessionState, redirect_for,
)
from storefront.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class RegistrationTests(TestCase):
    """Test sign up"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_returns_tokens(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'Ana@Example.com',
            'password': 'secret1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['email'], 'ana@example.com')
        self.assertTrue(User.objects.filter(email='ana@example.com').exists())

    def test_register_duplicate_email(self):
        TestDataFactory.create_user(email='ana@example.com')
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'ana@example.com',
            'password': 'secret1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], AuthFailure.DUPLICATE_ACCOUNT)

    def test_register_short_password(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'ana@example.com',
            'password': '12345',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_register_invalid_email(self):
        response = self.client.post('/api/v1/auth/register/', {
            'email': 'not-an-email',
            'password': 'secret1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)


class LoginTests(TestCase):
    """Test login, the current user and the session endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(email='staff@example.com', password='secret1')
        self.client = AuthenticatedAPIClient()

    def test_login_success(self):
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'staff@example.com',
            'password': 'secret1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['email'], 'staff@example.com')

    def test_login_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {
            'email': 'staff@example.com',
            'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], AuthFailure.BAD_CREDENTIALS)

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'staff@example.com')

    def test_session_status_anonymous(self):
        response = self.client.get('/api/v1/auth/session/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['authenticated'])
        self.assertEqual(response.data['redirect'], SIGN_IN_PATH)

    def test_session_status_authenticated(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/session/')
        self.assertTrue(response.data['authenticated'])
        self.assertEqual(response.data['redirect'], DASHBOARD_PATH)


class SessionStateTests(SimpleTestCase):
    """Test the observable session value"""

    def setUp(self):
        self.state = SessionState()
        self.session = Session(email='ana@example.com', access_token='token')

    def test_redirect_for(self):
        self.assertEqual(redirect_for(None), SIGN_IN_PATH)
        self.assertEqual(redirect_for(self.session), DASHBOARD_PATH)

    def test_subscribers_notified_on_change(self):
        seen = []
        self.state.subscribe(seen.append)
        self.state.set(self.session)
        self.state.clear()
        self.assertEqual(seen, [self.session, None])
        self.assertFalse(self.state.is_authenticated)

    def test_no_notification_without_change(self):
        seen = []
        self.state.subscribe(seen.append)
        self.state.clear()
        self.state.set(self.session)
        self.state.set(Session(email='ana@example.com', access_token='token'))
        self.assertEqual(seen, [self.session])

    def test_unsubscribe(self):
        seen = []
        unsubscribe = self.state.subscribe(seen.append)
        unsubscribe()
        self.state.set(self.session)
        self.assertEqual(seen, [])

    def test_failing_subscriber_does_not_block_others(self):
        seen = []

        def broken(session):
            raise RuntimeError('boom')

        self.state.subscribe(broken)
        self.state.subscribe(seen.append)
        with self.assertLogs('storefront.core.session', level='ERROR'):
            self.state.set(self.session)
        self.assertEqual(seen, [self.session])


class CacheInvalidationTests(TestCase):
    """Test versioned cache prefixes and signal driven invalidation"""

    def setUp(self):
        cache.clear()

    def test_invalidation_bumps_version(self):
        before = cache_utils.make_cache_key(cache_utils.PRODUCTS_PREFIX, 'a')
        cache_utils.invalidate_cache_pattern(cache_utils.PRODUCTS_PREFIX)
        after = cache_utils.make_cache_key(cache_utils.PRODUCTS_PREFIX, 'a')
        self.assertNotEqual(before, after)

    def test_cached_query_reuses_result_until_invalidated(self):
        calls = []

        @cache_utils.cached_query(cache_ttl=60, key_prefix=cache_utils.ORDERS_PREFIX)
        def load():
            calls.append(1)
            return [len(calls)]

        self.assertEqual(load(), [1])
        self.assertEqual(load(), [1])
        cache_utils.invalidate_order_reads()
        self.assertEqual(load(), [2])

    def test_product_save_invalidates_catalog(self):
        version = cache_utils.get_prefix_version(cache_utils.PRODUCTS_PREFIX)
        TestDataFactory.create_product()
        self.assertGreater(cache_utils.get_prefix_version(cache_utils.PRODUCTS_PREFIX), version)

    def test_suspended_signals_skip_invalidation(self):
        version = cache_utils.get_prefix_version(cache_utils.CATEGORIES_PREFIX)
        with suspend_cache_signals():
            TestDataFactory.create_category()
        self.assertEqual(cache_utils.get_prefix_version(cache_utils.CATEGORIES_PREFIX), version)

    def test_redis_scan_used_when_configured(self):
        with mock.patch.object(cache_utils, '_uses_redis', return_value=True), \
                mock.patch.object(cache_utils, '_delete_redis_keys') as delete_keys:
            cache_utils.invalidate_cache_pattern(cache_utils.DASHBOARD_PREFIX)
        delete_keys.assert_called_once_with(cache_utils.DASHBOARD_PREFIX)


class ErrorPayloadTests(SimpleTestCase):
    """Test the error taxonomy payloads"""

    def test_validation_failure_equality(self):
        self.assertEqual(ValidationFailure('items', 'x'), ValidationFailure('items', 'x'))
        self.assertNotEqual(ValidationFailure('items', 'x'), ValidationFailure('status', 'x'))

    def test_write_failure_payload(self):
        error = RemoteWriteFailure('Error creating order items', phase='items', order_id=7)
        self.assertEqual(error.as_dict(), {
            'error': 'Error creating order items',
            'code': 'write_failed',
            'phase': 'items',
            'order_id': 7,
            'compensated': False,
        })
        self.assertEqual(error.http_status, status.HTTP_502_BAD_GATEWAY)

    def test_upload_failure_status(self):
        self.assertEqual(UploadFailure('bad type').http_status, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(UploadFailure('rejected', rejected_by_store=True).http_status, status.HTTP_502_BAD_GATEWAY)

    def test_auth_failure_status(self):
        self.assertEqual(AuthFailure(AuthFailure.BAD_CREDENTIALS, 'x').http_status, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(AuthFailure(AuthFailure.DUPLICATE_ACCOUNT, 'x').http_status, status.HTTP_409_CONFLICT)
        self.assertEqual(AuthFailure(AuthFailure.UNAVAILABLE, 'x').http_status, status.HTTP_503_SERVICE_UNAVAILABLE)


class StorefrontClientTests(SimpleTestCase):
    """Test the HTTP client's credential checks, error classification and redirects"""

    def setUp(self):
        self.state = SessionState()
        self.client = StorefrontClient('http://api.test/api/v1/', session_state=self.state)

    def response(self, status_code, data=None):
        response = mock.Mock(spec=requests.Response)
        response.status_code = status_code
        response.reason = 'Error'
        response.json.return_value = data if data is not None else {}
        return response

    def test_credentials_checked_before_request(self):
        with mock.patch.object(self.client.http, 'post') as post:
            with self.assertRaises(AuthFailure) as ctx:
                self.client.login('ana@example.com', '123')
        self.assertEqual(ctx.exception.kind, AuthFailure.INVALID)
        post.assert_not_called()

    def test_login_sets_session_and_shell_follows(self):
        shell = DashboardShell(self.state)
        shell.start()
        self.assertEqual(shell.location, SIGN_IN_PATH)

        ok = self.response(200, {'access': 'a', 'refresh': 'r', 'user': {'email': 'ana@example.com'}})
        with mock.patch.object(self.client.http, 'post', return_value=ok) as post:
            session = self.client.login(' Ana@Example.com ', 'secret1')

        self.assertEqual(post.call_args.args[0], 'http://api.test/api/v1/auth/login/')
        self.assertEqual(session.email, 'ana@example.com')
        self.assertEqual(self.state.current, session)
        self.assertEqual(shell.location, DASHBOARD_PATH)

        self.client.logout()
        self.assertEqual(shell.location, SIGN_IN_PATH)
        self.assertNotIn('Authorization', self.client.http.headers)

    def test_stopped_shell_ignores_changes(self):
        shell = DashboardShell(self.state)
        shell.start()
        shell.stop()
        self.state.set(Session(email='ana@example.com', access_token='a'))
        self.assertEqual(shell.location, SIGN_IN_PATH)
        self.assertFalse(shell.is_running)

    def test_bad_credentials(self):
        rejected = self.response(401, {'error': 'Invalid email or password', 'code': 'bad_credentials'})
        with mock.patch.object(self.client.http, 'post', return_value=rejected):
            with self.assertRaises(AuthFailure) as ctx:
                self.client.login('ana@example.com', 'secret1')
        self.assertEqual(ctx.exception.kind, AuthFailure.BAD_CREDENTIALS)
        self.assertFalse(self.state.is_authenticated)

    def test_duplicate_signup(self):
        conflict = self.response(409, {'error': 'This email is already registered', 'code': 'duplicate_account'})
        with mock.patch.object(self.client.http, 'post', return_value=conflict):
            with self.assertRaises(AuthFailure) as ctx:
                self.client.signup('ana@example.com', 'secret1')
        self.assertEqual(ctx.exception.kind, AuthFailure.DUPLICATE_ACCOUNT)

    def test_service_unreachable(self):
        with mock.patch.object(self.client.http, 'post', side_effect=requests.exceptions.ConnectionError('down')):
            with self.assertRaises(AuthFailure) as ctx:
                self.client.signup('ana@example.com', 'secret1')
        self.assertEqual(ctx.exception.kind, AuthFailure.UNAVAILABLE)

    def test_server_error_classified_unavailable(self):
        with mock.patch.object(self.client.http, 'post', return_value=self.response(500)):
            with self.assertRaises(AuthFailure) as ctx:
                self.client.login('ana@example.com', 'secret1')
        self.assertEqual(ctx.exception.kind, AuthFailure.UNAVAILABLE)
