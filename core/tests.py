"""
Tests for authentication, permissions, error envelopes and rate limiting.

Test Cases:
1. Missing or malformed Authorization header
2. Identity provider failures map to codes and statuses
3. Profile checks (missing profile, deactivated account)
4. Role and department permissions
5. Rate limiting through a fake Redis counter
"""
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient, APIRequestFactory

from core.authentication import AuthenticatedUser
from core.exceptions import error_envelope
from core.identity import TokenVerificationError
from core.permissions import IsPurchaseAdmin, role_required
from documents.store import DocumentStore

CLAIMS = {'uid': 'u-1', 'email': 'staff@example.com'}


@override_settings(RATE_LIMIT_ENABLED=False)
class BearerTokenAuthenticationTestCase(TestCase):
    """Authentication runs against the products listing endpoint."""

    url = '/api/products/'

    def setUp(self):
        self.client = APIClient()
        self.store = DocumentStore()
        self.store.create('users', {'email': 'staff@example.com', 'role': 'Staff', 'isActive': True}, doc_id='u-1')

    def test_missing_header_returns_missing_token(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['code'], 'MISSING_TOKEN')

    def test_malformed_header_returns_missing_token(self):
        response = self.client.get(self.url, HTTP_AUTHORIZATION='Token abc')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'MISSING_TOKEN')

    @patch('core.authentication.verify_token')
    def test_expired_token(self, mock_verify):
        mock_verify.side_effect = TokenVerificationError('Session expired', 'TOKEN_EXPIRED', 401)

        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer old')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['code'], 'TOKEN_EXPIRED')
        self.assertEqual(response.data['message'], 'Session expired')

    @patch('core.authentication.verify_token')
    def test_quota_exceeded_keeps_provider_status(self, mock_verify):
        mock_verify.side_effect = TokenVerificationError('Quota exceeded', 'QUOTA_EXCEEDED', 429)

        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.data['code'], 'QUOTA_EXCEEDED')

    @patch('core.authentication.verify_token')
    def test_unknown_profile_returns_404(self, mock_verify):
        mock_verify.return_value = {'uid': 'nobody'}

        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['code'], 'USER_NOT_FOUND')

    @patch('core.authentication.verify_token')
    def test_deactivated_account_returns_403(self, mock_verify):
        self.store.update('users', 'u-1', {'isActive': False})
        mock_verify.return_value = CLAIMS

        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'ACCOUNT_DEACTIVATED')

    @patch('core.authentication.verify_token')
    def test_valid_token_reaches_view(self, mock_verify):
        mock_verify.return_value = CLAIMS

        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer good')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        mock_verify.assert_called_once_with('good')

    @patch('core.authentication.verify_token')
    def test_keyword_is_case_insensitive(self, mock_verify):
        mock_verify.return_value = CLAIMS

        response = self.client.get(self.url, HTTP_AUTHORIZATION='bearer good')

        self.assertEqual(response.status_code, 200)
        mock_verify.assert_called_once_with('good')


class AuthenticatedUserTestCase(SimpleTestCase):

    def test_claims_override_profile_and_are_lower_cased(self):
        user = AuthenticatedUser.from_claims(
            {'uid': 'u-1', 'role': 'ADMIN', 'department': 'Purchase'},
            {'role': 'staff', 'department': 'sales', 'name': 'Asha'},
        )

        self.assertEqual(user.role, 'admin')
        self.assertEqual(user.department, 'purchase')
        self.assertEqual(user.name, 'Asha')

    def test_profile_used_when_claims_are_silent(self):
        user = AuthenticatedUser.from_claims({'uid': 'u-2'}, {'role': 'Super_Admin'})

        self.assertTrue(user.is_super_admin)
        self.assertIsNone(user.department)


class RolePermissionTestCase(SimpleTestCase):

    def setUp(self):
        self.factory = APIRequestFactory()

    def _check(self, permission_class, user):
        request = self.factory.get('/')
        request.user = user
        permission = permission_class()
        return permission.has_permission(request, view=None), permission

    def test_super_admin_passes_everything(self):
        allowed, _ = self._check(IsPurchaseAdmin, AuthenticatedUser(uid='s', role='super_admin'))
        self.assertTrue(allowed)

    def test_purchase_admin_passes(self):
        allowed, _ = self._check(
            IsPurchaseAdmin, AuthenticatedUser(uid='a', role='admin', department='purchase')
        )
        self.assertTrue(allowed)

    def test_admin_of_other_department_is_rejected(self):
        allowed, permission = self._check(
            IsPurchaseAdmin, AuthenticatedUser(uid='a', role='admin', department='sales')
        )
        self.assertFalse(allowed)
        self.assertEqual(permission.code, 'DEPARTMENT_REQUIRED')

    def test_staff_is_rejected_by_role(self):
        allowed, permission = self._check(IsPurchaseAdmin, AuthenticatedUser(uid='s', role='staff'))
        self.assertFalse(allowed)
        self.assertEqual(permission.code, 'ROLE_REQUIRED')

    def test_role_only_permission_ignores_department(self):
        allowed, _ = self._check(
            role_required(['admin', 'staff']), AuthenticatedUser(uid='s', role='staff', department='sales')
        )
        self.assertTrue(allowed)


@override_settings(RATE_LIMIT_ENABLED=False)
class PermissionEnvelopeTestCase(TestCase):

    @patch('core.authentication.verify_token')
    def test_forbidden_response_carries_code(self, mock_verify):
        DocumentStore().create('users', {'role': 'staff', 'isActive': True}, doc_id='u-1')
        mock_verify.return_value = CLAIMS

        response = APIClient().post(
            '/api/products/bulk/', {'products': []}, format='json', HTTP_AUTHORIZATION='Bearer t'
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data['code'], 'ROLE_REQUIRED')
        self.assertFalse(response.data['success'])


class ErrorEnvelopeTestCase(SimpleTestCase):

    def test_error_defaults_to_message(self):
        self.assertEqual(
            error_envelope('Failed'),
            {'success': False, 'message': 'Failed', 'error': 'Failed'},
        )

    def test_code_is_optional(self):
        body = error_envelope('Denied', 'nope', 'ROLE_REQUIRED')
        self.assertEqual(body['code'], 'ROLE_REQUIRED')
        self.assertEqual(body['error'], 'nope')


class FakeRedis:
    """In-memory stand-in for the INCR/EXPIRE/TTL calls the limiter makes."""

    def __init__(self):
        self.counts = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        return True

    def ttl(self, key):
        return 60


@override_settings(
    RATE_LIMIT_ENABLED=True,
    INVENTORY_CONFIG={'SOURCE_FETCH_WORKERS': 1, 'ENABLE_EMAIL_ALERTS': False, 'ENABLE_LIVE_EVENTS': False},
)
class RateLimitTestCase(TestCase):

    def setUp(self):
        DocumentStore().create('users', {'role': 'staff', 'isActive': True}, doc_id='u-1')
        self.client = APIClient()

    @patch('core.authentication.verify_token', return_value=CLAIMS)
    @patch('core.rate_limiting.get_redis_client')
    def test_analysis_is_throttled_after_limit(self, mock_client, mock_verify):
        mock_client.return_value = FakeRedis()

        with patch('inventory.views.InventoryAnalysisView.rate_limit_max_requests', 2):
            responses = [
                self.client.get('/api/inventory/analysis/', HTTP_AUTHORIZATION='Bearer t')
                for _ in range(3)
            ]

        self.assertEqual([r.status_code for r in responses], [200, 200, 429])
        self.assertEqual(responses[0]['X-RateLimit-Remaining'], '1')
        self.assertEqual(responses[2].data['code'], 'THROTTLED')

    @patch('core.authentication.verify_token', return_value=CLAIMS)
    @patch('core.rate_limiting.get_redis_client')
    def test_limiter_fails_open_on_redis_error(self, mock_client, mock_verify):
        import redis

        broken = MagicMock()
        broken.incr.side_effect = redis.ConnectionError('down')
        mock_client.return_value = broken

        response = self.client.get('/api/inventory/analysis/', HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 200)

    @patch('core.rate_limiting.get_redis_client', return_value=None)
    @patch('core.authentication.verify_token', return_value=CLAIMS)
    def test_limiter_disabled_without_redis(self, mock_verify, mock_client):
        response = self.client.get('/api/inventory/analysis/', HTTP_AUTHORIZATION='Bearer t')

        self.assertEqual(response.status_code, 200)
        self.assertNotIn('X-RateLimit-Limit', response)
