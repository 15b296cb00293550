from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from datetime import time, timedelta
from unittest import mock
import threading

from availability.models import AvailabilitySchedule, EventSlot, EventType
from availability.tests import local, next_monday
from availability.cache import AvailabilityCache
from core.tasks import complete_finished_bookings, invalidate_availability
from .models import Booking
from .services import BookingService, BookingStateError

User = get_user_model()


class BookingServiceTestCase(TestCase):

    def setUp(self):
        """Настройка тестовых данных"""
        cache.clear()

        self.event_type = EventType.objects.create(
            slug='consult',
            title='Консультация',
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

    def book(self, hour=9, minute=0, event_type=None, **kwargs):
        params = {
            'customer_name': 'Иван Петров',
            'customer_email': 'ivan@example.com',
        }
        params.update(kwargs)
        return BookingService.create_booking(
            (event_type or self.event_type).id,
            local(self.monday, hour, minute),
            **params
        )

    def test_create_booking(self):
        """Тест создания бронирования"""
        decision, booking = self.book()

        self.assertTrue(decision.allowed)
        self.assertEqual(booking.status, 'confirmed')
        self.assertEqual(booking.ends_at - booking.starts_at, timedelta(minutes=30))
        self.assertEqual(booking.timezone, 'Europe/Amsterdam')

    def test_second_booking_rejected(self):
        """Второе бронирование того же слота получает конфликт"""
        self.book()
        decision, booking = self.book(customer_email='other@example.com')

        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'booked')
        self.assertEqual(Booking.objects.count(), 1)

    def test_buffer_blocks_adjacent_slot(self):
        self.event_type.buffer_after_minutes = 15
        self.event_type.save()

        self.book(9, 30)
        decision, booking = self.book(9, 0)

        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'booked')

    def test_group_capacity(self):
        self.event_type.max_attendees = 3
        self.event_type.save()

        self.assertIsNotNone(self.book(attendee_count=2)[1])
        decision, booking = self.book(attendee_count=2)
        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'full')

        decision, booking = self.book(attendee_count=1)
        self.assertIsNotNone(booking)
        self.assertEqual(decision.remaining_seats, 0)

    def test_outside_schedule_rejected(self):
        decision, booking = self.book(11, 0)
        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'outside_schedule')

    def test_past_slot_rejected(self):
        decision, booking = BookingService.create_booking(
            self.event_type.id,
            local(self.monday - timedelta(days=28), 9),
            customer_name='Иван Петров',
            customer_email='ivan@example.com',
        )
        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'past')

    def test_idempotency_key(self):
        """Повтор запроса с тем же ключом возвращает то же бронирование"""
        _, first = self.book(idempotency_key='request-1')
        decision, second = self.book(idempotency_key='request-1')

        self.assertTrue(decision.allowed)
        self.assertEqual(first.id, second.id)
        self.assertEqual(Booking.objects.count(), 1)

    def test_requires_approval(self):
        self.event_type.requires_approval = True
        self.event_type.save()

        _, booking = self.book()
        self.assertEqual(booking.status, 'pending')

        # Ожидающее подтверждения бронирование тоже занимает слот
        decision, _ = self.book(customer_email='other@example.com')
        self.assertEqual(decision.conflict.code, 'booked')

        booking = BookingService.confirm_booking(booking.id)
        self.assertEqual(booking.status, 'confirmed')
        with self.assertRaises(BookingStateError):
            BookingService.confirm_booking(booking.id)

    def test_cancel_frees_slot(self):
        _, booking = self.book()

        cancelled = BookingService.cancel_booking(booking.id, 'Не смогу прийти')
        self.assertEqual(cancelled.status, 'cancelled')
        self.assertEqual(cancelled.cancellation_reason, 'Не смогу прийти')
        self.assertIsNotNone(cancelled.cancelled_at)

        _, rebooked = self.book(customer_email='other@example.com')
        self.assertIsNotNone(rebooked)

        with self.assertRaises(BookingStateError):
            BookingService.cancel_booking(booking.id)

    def test_inactive_event_type(self):
        self.event_type.is_active = False
        self.event_type.save()
        with self.assertRaises(EventType.DoesNotExist):
            self.book()

    @override_settings(BOOKING_USE_REDIS_LOCK=True)
    @mock.patch('core.lock.redis_client')
    def test_redis_lock_busy(self, mock_redis):
        """Лок занят другим запросом - бронирование не создаётся"""
        mock_redis.set.return_value = None

        decision, booking = self.book()

        self.assertIsNone(booking)
        self.assertEqual(decision.conflict.code, 'locked')
        mock_redis.eval.assert_not_called()

    @override_settings(BOOKING_USE_REDIS_LOCK=True, BOOKING_LOCK_TTL=7)
    @mock.patch('core.lock.redis_client')
    def test_redis_lock_released(self, mock_redis):
        mock_redis.set.return_value = True

        _, booking = self.book()

        self.assertIsNotNone(booking)
        key = f"booking-lock:{self.event_type.id}"
        self.assertEqual(mock_redis.set.call_args.args[0], key)
        self.assertEqual(mock_redis.set.call_args.kwargs, {'nx': True, 'ex': 7})
        token = mock_redis.set.call_args.args[1]
        mock_redis.eval.assert_called_once()
        self.assertEqual(mock_redis.eval.call_args.args[1:], (1, key, token))


class BookingTasksTestCase(TestCase):

    def test_complete_finished_bookings(self):
        event_type = EventType.objects.create(slug='past', title='Прошедшее', duration_minutes=30)
        now = timezone.now()
        finished = Booking.objects.create(
            event_type=event_type,
            customer_name='Анна',
            customer_email='anna@example.com',
            starts_at=now - timedelta(hours=2),
            ends_at=now - timedelta(hours=1, minutes=30),
            status='confirmed',
        )
        upcoming = Booking.objects.create(
            event_type=event_type,
            customer_name='Анна',
            customer_email='anna@example.com',
            starts_at=now + timedelta(days=1),
            ends_at=now + timedelta(days=1, minutes=30),
            status='confirmed',
        )

        self.assertEqual(complete_finished_bookings(), 1)

        finished.refresh_from_db()
        upcoming.refresh_from_db()
        self.assertEqual(finished.status, 'completed')
        self.assertEqual(upcoming.status, 'confirmed')

    def test_invalidate_availability(self):
        cache.clear()
        event_type = EventType.objects.create(slug='cached', title='Кеш', duration_minutes=30)
        version = AvailabilityCache.get_version(event_type.id)

        invalidate_availability(str(event_type.id))
        self.assertEqual(AvailabilityCache.get_version(event_type.id), version + 1)

        invalidate_availability()
        self.assertEqual(AvailabilityCache.get_version(event_type.id), version + 2)


class BookingAPITestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin',
            email='admin@example.com',
            password='adminpass123',
            role='admin'
        )

        self.event_type = EventType.objects.create(
            slug='consult',
            title='Консультация',
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
        self.payload = {
            'event_type': 'consult',
            'starts_at': local(self.monday, 9).isoformat(),
            'customer_name': 'Иван Петров',
            'customer_email': 'ivan@example.com',
        }

    def test_create_booking(self):
        """Тест создания бронирования через API"""
        response = self.client.post('/api/bookings/', self.payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertEqual(response.data['event_type_slug'], 'consult')

    def test_create_booking_conflict(self):
        self.client.post('/api/bookings/', self.payload, format='json')
        response = self.client.post('/api/bookings/', self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['reason'], 'booked')

    def test_create_booking_validation(self):
        payload = dict(self.payload, customer_email='not-an-email')
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        payload = dict(self.payload, event_type='missing')
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_booking(self):
        response = self.client.post('/api/bookings/', self.payload, format='json')
        booking_id = response.data['id']

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/', {'reason': 'Заболел'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_requires_admin(self):
        self.client.post('/api/bookings/', self.payload, format='json')

        response = self.client.get('/api/bookings/')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/bookings/', {'status': 'confirmed'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        response = self.client.get('/api/bookings/', {'status': 'cancelled'})
        self.assertEqual(len(response.data), 0)

    def test_list_invalid_event_type_filter(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/bookings/', {'event_type': 'not-a-uuid'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/bookings/', {'event_type': str(self.event_type.id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_create_booking_invalid_timezone(self):
        payload = dict(self.payload, timezone='Mars/Olympus')
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timezone', response.data)

    def test_create_booking_unknown_event_slot(self):
        payload = dict(self.payload, event_slot=99999)
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('event_slot', response.data)
        self.assertEqual(Booking.objects.count(), 0)

    def test_create_booking_with_event_slot(self):
        """Бронирование разового слота: слот должен относиться к типу события"""
        tuesday = self.monday + timedelta(days=1)
        other = EventType.objects.create(slug='other', title='Другое', duration_minutes=30)
        foreign_slot = EventSlot.objects.create(
            event_type=other, starts_at=local(tuesday, 14), ends_at=local(tuesday, 15)
        )
        own_slot = EventSlot.objects.create(
            event_type=self.event_type, starts_at=local(tuesday, 14), ends_at=local(tuesday, 15)
        )
        payload = dict(self.payload, starts_at=local(tuesday, 14).isoformat())

        response = self.client.post('/api/bookings/', dict(payload, event_slot=foreign_slot.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/bookings/', dict(payload, event_slot=own_slot.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event_slot'], own_slot.id)


@skipUnlessDBFeature('has_select_for_update')
class ConcurrentBookingTestCase(TransactionTestCase):
    """
    Одновременные запросы на последнее место. SQLite не поддерживает
    SELECT ... FOR UPDATE, поэтому тест выполняется только на PostgreSQL.
    """

    def setUp(self):
        cache.clear()
        self.event_type = EventType.objects.create(
            slug='consult',
            title='Консультация',
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

    def test_race_for_last_seat(self):
        """Из двух одновременных запросов на один слот проходит ровно один"""
        barrier = threading.Barrier(2)
        results = []
        errors = []

        def book(email):
            try:
                barrier.wait()
                results.append(BookingService.create_booking(
                    self.event_type.id,
                    local(self.monday, 9),
                    customer_name='Иван Петров',
                    customer_email=email,
                ))
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [
            threading.Thread(target=book, args=(email,))
            for email in ('first@example.com', 'second@example.com')
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        created = [booking for _, booking in results if booking is not None]
        rejected = [decision for decision, booking in results if booking is None]
        self.assertEqual(len(created), 1)
        self.assertEqual(len(rejected), 1)
        self.assertEqual(rejected[0].conflict.code, 'booked')
        self.assertEqual(Booking.objects.count(), 1)
