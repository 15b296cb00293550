from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from .models import AvailabilitySchedule, BlockedTime, EventSlot, EventType
from .services import AvailabilityService
import logging
from bookings.models import Booking

logger = logging.getLogger(__name__)


def _invalidate_after_commit(event_type_id):
    # Инвалидация после коммита: иначе параллельный запрос успеет закешировать старые данные
    transaction.on_commit(lambda: AvailabilityService.handle_event_type_change(event_type_id))


@receiver(post_save, sender=EventType)
@receiver(post_delete, sender=EventType)
def on_event_type_change(sender, instance, **kwargs):
    """
    Обработчик изменений типа события
    """
    _invalidate_after_commit(instance.id)


@receiver(post_save, sender=AvailabilitySchedule)
@receiver(post_delete, sender=AvailabilitySchedule)
@receiver(post_save, sender=EventSlot)
@receiver(post_delete, sender=EventSlot)
def on_schedule_change(sender, instance, **kwargs):
    """
    Обработчик изменений правил и разовых слотов
    """
    _invalidate_after_commit(instance.event_type_id)


@receiver(post_save, sender=BlockedTime)
@receiver(post_delete, sender=BlockedTime)
def on_blocked_time_change(sender, instance, **kwargs):
    """
    Глобальная блокировка затрагивает все типы событий
    """
    if instance.event_type_id:
        _invalidate_after_commit(instance.event_type_id)
    else:
        transaction.on_commit(AvailabilityService.handle_global_change)


@receiver(post_save, sender=Booking)
@receiver(post_delete, sender=Booking)
def on_booking_change(sender, instance, **kwargs):
    """
    Обработчик создания, изменения статуса и удаления бронирования
    """
    _invalidate_after_commit(instance.event_type_id)
