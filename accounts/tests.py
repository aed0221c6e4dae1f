"""
Tests for the session gate and the login endpoints.
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase


class SessionGateTestCase(APITestCase):
    """Anonymous requests are sent to the login page with the requested path."""

    def test_anonymous_api_request_redirects_to_login(self):
        response = self.client.get('/api/products/')

        self.assertEqual(response.status_code, 302)
        self.assertEqual(response['Location'], '/api/auth/login/?next=/api/products/')

    def test_anonymous_write_is_redirected_too(self):
        response = self.client.post('/api/sales/', {'customer_name': 'x', 'items': []}, format='json')

        self.assertEqual(response.status_code, 302)
        self.assertTrue(response['Location'].startswith('/api/auth/login/'))

    def test_health_is_public(self):
        response = self.client.get('/health/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')

    def test_login_page_is_public(self):
        response = self.client.get('/api/auth/login/', {'next': '/api/sales/'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['next'], '/api/sales/')


class LoginTestCase(APITestCase):
    """Test cases for login, logout and the current user."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username='demo123',
            password='Prueba12#',
            first_name='Demo',
            last_name='User'
        )

    def login(self, **kwargs):
        payload = {'username': 'demo123', 'password': 'Prueba12#'}
        payload.update(kwargs)
        return self.client.post('/api/auth/login/', payload, format='json')

    def test_login_starts_session(self):
        """
        Given: A registered user
        When: Posting valid credentials
        Then: The session is started and the landing page is returned
        """
        response = self.login()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['user']['username'], 'demo123')
        self.assertEqual(response.data['user']['name'], 'Demo User')
        self.assertEqual(response.data['next'], '/api/dashboard/')

        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['id'], self.user.id)

    def test_login_returns_requested_next(self):
        response = self.login(next='/api/purchases/')

        self.assertEqual(response.data['next'], '/api/purchases/')

    def test_login_ignores_external_next(self):
        response = self.login(next='https://evil.example.com/')

        self.assertEqual(response.data['next'], '/api/dashboard/')

    def test_wrong_password(self):
        response = self.login(password='wrong')

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['error'], 'Invalid credentials')
        self.assertEqual(self.client.get('/api/products/').status_code, 302)

    def test_missing_password(self):
        response = self.client.post('/api/auth/login/', {'username': 'demo123'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('password', response.data)

    def test_signed_in_user_opening_login_goes_to_dashboard(self):
        self.client.force_login(self.user)

        response = self.client.get('/api/auth/login/')

        self.assertEqual(response.status_code, 302)
        self.assertEqual(response['Location'], '/api/dashboard/')

    def test_logout_ends_session(self):
        self.login()

        response = self.client.post('/api/auth/logout/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {'ok': True})
        self.assertEqual(self.client.get('/api/auth/me/').status_code, 302)
