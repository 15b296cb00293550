from django.db import IntegrityError, transaction
from django.utils import timezone
from datetime import timedelta
import logging

from availability.guard import CONFLICT_LOCKED, ReservationDecision
from availability.models import EventType
from availability.services import AvailabilityService
from core.lock import booking_lock
from .models import Booking

logger = logging.getLogger(__name__)


class BookingStateError(Exception):
    """Недопустимый переход статуса бронирования"""


class InvalidBookingRequest(ValueError):
    """Запрос на бронирование противоречит настройкам типа события"""


class BookingService:
    """
    Создание и отмена бронирований.

    Создание проходит в два этапа: быстрая проверка слота (включая внешний
    календарь) и транзакционная запись под блокировкой строки типа события,
    где слот проверяется повторно по свежим данным. Транзакция - окончательный
    арбитр: проигравший получает SlotConflict.
    """

    @classmethod
    def create_booking(cls, event_type_id, starts_at, customer_name, customer_email,
                       customer_phone='', customer_notes='', attendee_count=1,
                       booking_timezone=None, idempotency_key=None, event_slot_id=None,
                       now=None):
        """
        :return: (ReservationDecision, Booking или None)
        :raises EventType.DoesNotExist: тип события не найден или неактивен
        :raises InvalidBookingRequest: разовый слот не относится к типу события
        """
        event_type = AvailabilityService.get_event_type(event_type_id)
        ends_at = starts_at + timedelta(minutes=event_type.duration_minutes)

        if idempotency_key:
            existing = Booking.objects.filter(idempotency_key=idempotency_key).first()
            if existing is not None:
                logger.info(f"Повторный запрос с ключом {idempotency_key}, возвращаем бронирование {existing.id}")
                return ReservationDecision.allow(0), existing

        if event_slot_id is not None:
            cls._validate_event_slot(event_type, event_slot_id, starts_at, ends_at)

        # Внешний календарь проверяется до транзакции, чтобы не держать блокировку на время HTTP-запроса
        decision = AvailabilityService.evaluate_slot(
            event_type, starts_at, ends_at, now=now, attendees=attendee_count
        )
        if not decision.allowed:
            logger.info(f"Слот {starts_at.isoformat()} для {event_type.slug} отклонён: {decision.conflict.code}")
            return decision, None

        with booking_lock(event_type.id) as locked:
            if not locked:
                return ReservationDecision.deny(CONFLICT_LOCKED), None

            try:
                with transaction.atomic():
                    # Сериализует конкурирующие записи по одному типу события
                    locked_event_type = EventType.objects.select_for_update().get(pk=event_type.pk)

                    decision = AvailabilityService.evaluate_slot(
                        locked_event_type, starts_at, ends_at, now=now,
                        include_external_calendar=False, attendees=attendee_count
                    )
                    if not decision.allowed:
                        logger.info(
                            f"Слот {starts_at.isoformat()} для {event_type.slug} занят при записи: "
                            f"{decision.conflict.code}"
                        )
                        return decision, None

                    booking = Booking.objects.create(
                        event_type=locked_event_type,
                        event_slot_id=event_slot_id,
                        customer_name=customer_name,
                        customer_email=customer_email,
                        customer_phone=customer_phone or '',
                        customer_notes=customer_notes or '',
                        starts_at=starts_at,
                        ends_at=ends_at,
                        timezone=booking_timezone or locked_event_type.timezone,
                        attendee_count=attendee_count,
                        status='pending' if locked_event_type.requires_approval else 'confirmed',
                        idempotency_key=idempotency_key or None,
                    )
            except IntegrityError:
                # Параллельный запрос с тем же ключом идемпотентности успел раньше
                existing = Booking.objects.filter(idempotency_key=idempotency_key).first() if idempotency_key else None
                if existing is None:
                    raise
                return ReservationDecision.allow(0), existing

        logger.info(f"Создано бронирование {booking.id} ({booking.status}) на {starts_at.isoformat()}")
        return decision, booking

    @classmethod
    def cancel_booking(cls, booking_id, reason=''):
        """
        Отменяет бронирование. Отменённые записи остаются для аудита
        и не учитываются в доступности.
        """
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking_id)

            if booking.status == 'cancelled':
                raise BookingStateError('Бронирование уже отменено')
            if booking.status in ('completed', 'no_show'):
                raise BookingStateError('Завершённое бронирование нельзя отменить')

            booking.status = 'cancelled'
            booking.cancellation_reason = reason or ''
            booking.cancelled_at = timezone.now()
            booking.save(update_fields=['status', 'cancellation_reason', 'cancelled_at', 'updated_at'])

        logger.info(f"Бронирование {booking.id} отменено")
        return booking

    @classmethod
    def confirm_booking(cls, booking_id):
        """Ручное подтверждение бронирования, ожидающего одобрения"""
        with transaction.atomic():
            booking = Booking.objects.select_for_update().get(pk=booking_id)
            if booking.status != 'pending':
                raise BookingStateError('Подтвердить можно только ожидающее бронирование')
            booking.status = 'confirmed'
            booking.save(update_fields=['status', 'updated_at'])

        logger.info(f"Бронирование {booking.id} подтверждено")
        return booking

    @staticmethod
    def _validate_event_slot(event_type, event_slot_id, starts_at, ends_at):
        event_slot = event_type.slots.filter(pk=event_slot_id, is_active=True).first()
        if event_slot is None:
            raise InvalidBookingRequest('Разовый слот не найден для этого типа события')
        if starts_at < event_slot.starts_at or ends_at > event_slot.ends_at:
            raise InvalidBookingRequest('Бронирование выходит за границы разового слота')
