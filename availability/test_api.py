from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework import status
from datetime import time, timedelta
from django.contrib.auth import get_user_model

from .models import AvailabilitySchedule, BlockedTime, EventType
from .tests import local, next_monday

User = get_user_model()


class EventTypeAPITestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()

        self.user = User.objects.create_user(
            username='client',
            email='user@example.com',
            password='testpass123'
        )
        self.admin = User.objects.create_user(
            username='admin',
            email='admin@example.com',
            password='adminpass123',
            role='admin'
        )

        self.event_type = EventType.objects.create(
            slug='intro-call',
            title='Вводный звонок',
            duration_minutes=30,
            timezone='Europe/Amsterdam',
        )
        AvailabilitySchedule.objects.create(
            event_type=self.event_type,
            day_of_week=1,
            start_time=time(9),
            end_time=time(10),
        )

        self.monday = next_monday()
        self.start = local(self.monday, 0)
        self.end = self.start + timedelta(days=1)

    def availability_url(self, identifier):
        return f'/api/event-types/{identifier}/availability/'

    def test_get_event_types_list(self):
        """Тест получения списка типов событий"""
        response = self.client.get('/api/event-types/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['slug'], 'intro-call')

    def test_get_event_type_by_slug(self):
        response = self.client.get('/api/event-types/intro-call/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['title'], self.event_type.title)
        self.assertNotIn('calendar_owner', response.data)

    def test_get_availability(self):
        """Тест получения доступности типа события"""
        response = self.client.get(
            self.availability_url(self.event_type.id),
            {'start': self.start.isoformat(), 'end': self.end.isoformat()}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_slots'], 2)
        self.assertEqual(response.data['available_slots'], 2)
        self.assertEqual(response.data['available_dates'], [self.monday.isoformat()])
        self.assertTrue(response.data['slots'][0]['available'])
        self.assertEqual(response.data['slots'][0]['remaining_seats'], 1)
        self.assertEqual(list(response.data['slots_by_date'].keys()), [self.monday.isoformat()])
        self.assertEqual(len(response.data['slots_by_date'][self.monday.isoformat()]), 2)
        self.assertEqual(response.data['next_available'], response.data['slots'][0])

    def test_get_availability_default_range(self):
        """Без дат берутся ближайшие 30 дней"""
        response = self.client.get(self.availability_url('intro-call'), {'external': 'false'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('slots', response.data)
        self.assertGreaterEqual(response.data['total_slots'], 2)

    def test_get_availability_blocked_day(self):
        BlockedTime.objects.create(starts_at=self.start, ends_at=self.end, reason='Праздник')
        response = self.client.get(
            self.availability_url(self.event_type.id),
            {'start': self.start.isoformat(), 'end': self.end.isoformat()}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_slots'], 0)

    def test_get_availability_invalid_range(self):
        """Тест получения доступности с неверным диапазоном"""
        response = self.client.get(
            self.availability_url(self.event_type.id),
            {'start': self.end.isoformat(), 'end': self.start.isoformat()}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get(self.availability_url(self.event_type.id), {'start': 'invalid-date'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_availability_unknown_event_type(self):
        response = self.client.get(self.availability_url('missing'))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_check_slot(self):
        response = self.client.post(
            f'/api/event-types/{self.event_type.id}/check/',
            {'starts_at': local(self.monday, 9, 30).isoformat()},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['allowed'])
        self.assertIsNone(response.data['reason'])

        response = self.client.post(
            f'/api/event-types/{self.event_type.id}/check/',
            {'starts_at': local(self.monday, 9, 15).isoformat()},
            format='json'
        )
        self.assertFalse(response.data['allowed'])
        self.assertEqual(response.data['reason'], 'outside_schedule')

    def test_create_event_type_requires_admin(self):
        payload = {
            'slug': 'workshop',
            'title': 'Воркшоп',
            'duration_minutes': 90,
            'max_attendees': 10,
            'timezone': 'Europe/Amsterdam',
        }
        response = self.client.post('/api/event-types/', payload, format='json')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/event-types/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/event-types/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['max_attendees'], 10)

    def test_create_event_type_invalid_timezone(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/event-types/', {
            'slug': 'broken',
            'title': 'Сломанный',
            'duration_minutes': 30,
            'timezone': 'Mars/Olympus',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timezone', response.data)

    def test_deactivate_event_type(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/event-types/{self.event_type.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.client.force_authenticate(user=None)
        response = self.client.get(self.availability_url(self.event_type.id))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_schedule_validation(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/schedules/', {
            'event_type': str(self.event_type.id),
            'day_of_week': 2,
            'start_time': '17:00',
            'end_time': '09:00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/schedules/', {
            'event_type': str(self.event_type.id),
            'day_of_week': 2,
            'start_time': '09:00',
            'end_time': '17:00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/schedules/', {'event_type': str(self.event_type.id)})
        self.assertEqual(len(response.data), 2)

        response = self.client.get('/api/schedules/', {'event_type': 'not-a-uuid'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
