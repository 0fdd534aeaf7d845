"""
Test suite for core: registration, JWT login, profile, audit logs and caching helpers
"""
from unittest.mock import patch
from rest_framework import status
from tarodan.core.models import AuditLog
from tarodan.core.utils import create_audit_log, get_client_ip
from tarodan.core.cache_utils import (
    get_cached_products_list, cache_products_list, invalidate_products_cache,
)
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase


class AuthTests(MarketplaceTestCase):
    """Test registration, login and token refresh"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()

    def test_register_returns_tokens(self):
        """Test registration creates the user and returns a token pair"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'collector1',
            'email': 'collector1@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'collector1')
        self.assertFalse(response.data['user']['is_seller'])

    def test_register_password_mismatch(self):
        """Test registration rejects mismatched passwords"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'collector2',
            'email': 'collector2@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'different-pass-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login(self):
        """Test login with valid credentials"""
        TestDataFactory.create_user(username='alice', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'alice', 'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_banned_user_cannot_login(self):
        """Test banned accounts are refused a token"""
        TestDataFactory.create_user(username='banned', password='testpass123', is_banned=True)
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'banned', 'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_with_garbage_token(self):
        """Test malformed refresh tokens are rejected"""
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class UserMeTests(MarketplaceTestCase):
    """Test the current user profile endpoint"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_get_me_includes_membership(self):
        """Test free tier summary is included for users without membership"""
        response = self.client.get('/api/v1/users/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['membership']['tier_type'], 'free')
        self.assertFalse(response.data['membership']['can_trade'])

    def test_patch_me(self):
        """Test profile fields can be updated"""
        response = self.client.patch('/api/v1/users/me/', {'display_name': 'Diecast Dan'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.display_name, 'Diecast Dan')

    def test_cannot_promote_self(self):
        """Test read-only flags are ignored on update"""
        self.client.patch('/api/v1/users/me/', {'is_staff': True, 'is_banned': True}, format='json')
        self.user.refresh_from_db()
        self.assertFalse(self.user.is_staff)
        self.assertFalse(self.user.is_banned)

    def test_requires_authentication(self):
        """Test anonymous requests are rejected"""
        self.client.logout()
        response = self.client.get('/api/v1/users/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AuditLogTests(MarketplaceTestCase):
    """Test audit log helper and admin endpoint"""

    def test_create_audit_log(self):
        """Test an audit entry is written with the acting user"""
        user = TestDataFactory.create_user()
        log = create_audit_log(user=user, action='update', model_name='Product', object_id=5, changes={'price': '10'})
        self.assertIsNotNone(log)
        self.assertEqual(log.user, user)
        self.assertEqual(log.object_id, '5')

    def test_missing_fields_skip_audit(self):
        """Test incomplete entries are skipped instead of raising"""
        self.assertIsNone(create_audit_log(action='update', model_name='Product'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_audit_log_never_raises(self):
        """Test database errors are swallowed and logged"""
        with patch('tarodan.core.utils.AuditLog.objects.create', side_effect=RuntimeError('db down')):
            self.assertIsNone(create_audit_log(action='update', model_name='Product', object_id=1))

    def test_audit_log_list_admin_only(self):
        """Test only staff can list audit logs"""
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(client.get('/api/v1/audit-logs/').status_code, status.HTTP_403_FORBIDDEN)

        admin = TestDataFactory.create_admin()
        create_audit_log(user=admin, action='create', model_name='Category', object_id=1)
        client.authenticate_user(admin)
        response = client.get('/api/v1/audit-logs/', {'model_name': 'Category'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_client_ip_prefers_forwarded_header(self):
        """Test the first X-Forwarded-For address is used"""
        class FakeRequest:
            META = {'HTTP_X_FORWARDED_FOR': '10.0.0.1, 10.0.0.2', 'REMOTE_ADDR': '127.0.0.1'}
        self.assertEqual(get_client_ip(FakeRequest()), '10.0.0.1')


class CacheUtilsTests(MarketplaceTestCase):
    """Test listing cache invalidation"""

    def test_invalidation_orphans_cached_lists(self):
        """Test cached browse results are not served after invalidation"""
        data, key = get_cached_products_list({'page': '1'})
        self.assertIsNone(data)
        cache_products_list(key, {'results': []})
        self.assertEqual(get_cached_products_list({'page': '1'})[0], {'results': []})

        invalidate_products_cache()
        self.assertIsNone(get_cached_products_list({'page': '1'})[0])
