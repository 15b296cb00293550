from celery import shared_task
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)


@shared_task
def complete_finished_bookings():
    """Переводит подтверждённые бронирования, время которых прошло, в статус completed"""
    from bookings.models import Booking

    updated = Booking.objects.filter(
        status='confirmed',
        ends_at__lte=timezone.now(),
    ).update(status='completed', updated_at=timezone.now())

    logger.info(f"Завершено прошедших бронирований: {updated}")
    return updated


@shared_task
def invalidate_availability(event_type_id=None):
    """Инвалидация кеша доступности вне запроса (для одного типа или для всех)"""
    from availability.services import AvailabilityService

    if event_type_id:
        AvailabilityService.handle_event_type_change(event_type_id)
    else:
        AvailabilityService.handle_global_change()
    return True
