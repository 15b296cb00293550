from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework import status
from django.contrib.auth import get_user_model

User = get_user_model()


class AuthAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin',
            email='admin@example.com',
            password='adminpass123',
            role='admin'
        )

    def login(self, **credentials):
        return self.client.post('/api/auth/login/', credentials, format='json')

    def test_login_by_email(self):
        """Тест входа по email"""
        response = self.login(email='admin@example.com', password='adminpass123')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['role'], 'admin')

    def test_login_by_username(self):
        response = self.login(username='admin', password='adminpass123')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_wrong_password(self):
        response = self.login(email='admin@example.com', password='wrong')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.login(password='adminpass123')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_me_and_logout(self):
        tokens = self.login(email='admin@example.com', password='adminpass123').data
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")

        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'admin')

        response = self.client.post('/api/auth/logout/', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        # Повторная деактивация того же токена
        response = self.client.post('/api/auth/logout/', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_me_requires_auth(self):
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
