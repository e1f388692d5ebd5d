"""
Tests for core app - depots, operator accounts and authentication.
Tests cover: Model constraints, Permissions, JWT flow integration.
"""
from django.test import TestCase
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import IntegrityError
from rest_framework.test import APITestCase, APIRequestFactory
from rest_framework import status

from core.models import Depot
from core.permissions import IsDepotOperator

User = get_user_model()


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class UserModelTests(TestCase):
    """Test User model constraints and methods."""

    def test_create_user_with_email(self):
        """Test creating a user with email is successful."""
        user = User.objects.create_user(
            email='test@example.com',
            password='testpass123',
            name='Test User'
        )

        self.assertEqual(user.email, 'test@example.com')
        self.assertTrue(user.check_password('testpass123'))
        self.assertFalse(user.is_admin)
        self.assertTrue(user.is_active)
        self.assertIsNone(user.depot)

    def test_email_domain_is_normalized(self):
        """Test email domain is normalized to lowercase."""
        user = User.objects.create_user(email='Test@EXAMPLE.COM', password='test123', name='Test')
        self.assertEqual(user.email, 'Test@example.com')

    def test_email_is_unique(self):
        """Test that duplicate emails raise error."""
        User.objects.create_user(email='unique@example.com', password='test123', name='First')

        with self.assertRaises(IntegrityError):
            User.objects.create_user(email='unique@example.com', password='test123', name='Second')

    def test_create_user_without_email_raises_error(self):
        """Test creating user without email raises ValueError."""
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='test123', name='Test')

    def test_create_superuser(self):
        """Test creating a superuser."""
        user = User.objects.create_superuser(email='admin@example.com', password='admin123', name='Admin')

        self.assertTrue(user.is_superuser)
        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_admin)

    def test_depot_operator_flag(self):
        """Test a user attached to a depot is a depot operator."""
        depot = Depot.objects.create(name='Central Depot', city='Pune')
        operator = User.objects.create_user(email='op@example.com', password='x', name='Op', depot=depot)
        outsider = User.objects.create_user(email='out@example.com', password='x', name='Out')

        self.assertTrue(operator.is_depot_operator)
        self.assertFalse(outsider.is_depot_operator)
        self.assertEqual(list(depot.operators.all()), [operator])

    def test_deleting_depot_keeps_user(self):
        """Test deleting a depot detaches its operators instead of deleting them."""
        depot = Depot.objects.create(name='Central Depot')
        operator = User.objects.create_user(email='op@example.com', password='x', name='Op', depot=depot)

        depot.delete()
        operator.refresh_from_db()

        self.assertIsNone(operator.depot)

    def test_depot_name_is_unique(self):
        """Test duplicate depot names are rejected."""
        Depot.objects.create(name='Central Depot')
        with self.assertRaises(IntegrityError):
            Depot.objects.create(name='Central Depot')


# =============================================================================
# UNIT TESTS - Permissions
# =============================================================================

class IsDepotOperatorTests(TestCase):
    """Test the depot operator permission."""

    def setUp(self):
        self.factory = APIRequestFactory()
        self.permission = IsDepotOperator()
        self.depot = Depot.objects.create(name='Central Depot')

    def _check(self, user):
        request = self.factory.get('/api/schedules/')
        request.user = user
        return self.permission.has_permission(request, None)

    def test_operator_allowed(self):
        """Test a user with a depot is allowed."""
        user = User.objects.create_user(email='op@example.com', password='x', name='Op', depot=self.depot)
        self.assertTrue(self._check(user))

    def test_user_without_depot_denied(self):
        """Test a user without a depot is denied."""
        user = User.objects.create_user(email='out@example.com', password='x', name='Out')
        self.assertFalse(self._check(user))

    def test_anonymous_denied(self):
        """Test anonymous users are denied."""
        self.assertFalse(self._check(AnonymousUser()))


# =============================================================================
# INTEGRATION TESTS - API Flow
# =============================================================================

class AuthenticationAPITests(APITestCase):
    """Integration tests for token verification."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot', city='Pune')
        self.user = User.objects.create_user(
            email='operator@example.com',
            password='OperatorPass123!',
            name='Operator',
            depot=self.depot
        )

    def test_token_obtain_returns_jwt_pair(self):
        """Test obtaining a token pair with valid credentials."""
        response = self.client.post('/api/token/', {
            'email': 'operator@example.com',
            'password': 'OperatorPass123!'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_token_obtain_invalid_credentials(self):
        """Test invalid credentials are rejected."""
        response = self.client.post('/api/token/', {
            'email': 'operator@example.com',
            'password': 'wrong'
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_full_auth_flow(self):
        """Test complete flow: obtain token -> access profile with depot."""
        token_response = self.client.post('/api/token/', {
            'email': 'operator@example.com',
            'password': 'OperatorPass123!'
        }, format='json')
        access_token = token_response.data['access']

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {access_token}')
        response = self.client.get('/api/profile/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'operator@example.com')
        self.assertEqual(response.data['depot']['name'], 'Central Depot')

    def test_protected_route_without_token(self):
        """Test protected route returns 401 without token."""
        response = self.client.get('/api/profile/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_protected_route_with_invalid_token(self):
        """Test protected route returns 401 with invalid token."""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer invalid_token_here')
        response = self.client.get('/api/profile/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
