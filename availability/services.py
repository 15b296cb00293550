from django.conf import settings
from django.db.models import Q
from django.utils import timezone
from datetime import timedelta
import logging
import uuid

from .busy_time import fetch_busy_intervals, get_busy_time_provider
from .cache import AvailabilityCache
from .domain import AvailabilityContext, Window
from .engine import candidate_windows, compute_slots, schedule_windows
from .exceptions import RangeError
from .guard import CONFLICT_OUTSIDE_SCHEDULE, ReservationDecision, check_slot
from .models import BlockedTime, EventType
from bookings.models import Booking

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Сервис расчёта доступности: читает конфигурацию и бронирования,
    передаёт их движку и кеширует результат
    """

    @classmethod
    def get_event_type(cls, identifier, active_only=True):
        """
        Находит тип события по UUID или слагу
        :raises EventType.DoesNotExist: тип не найден или неактивен
        """
        queryset = EventType.objects.all()
        if active_only:
            queryset = queryset.filter(is_active=True)

        try:
            return queryset.get(id=uuid.UUID(str(identifier)))
        except ValueError:
            return queryset.get(slug=str(identifier))

    @classmethod
    def validate_range(cls, range_start, range_end):
        """
        Проверяет запрошенный диапазон до начала расчёта
        :raises RangeError: диапазон пустой, слишком большой или без часового пояса
        """
        if range_start is None or range_end is None:
            raise RangeError('Не задан диапазон дат')
        if timezone.is_naive(range_start) or timezone.is_naive(range_end):
            raise RangeError('Границы диапазона должны содержать часовой пояс')
        if range_end <= range_start:
            raise RangeError('Конец диапазона должен быть позже начала')

        max_days = settings.BOOKING_MAX_RANGE_DAYS
        if range_end - range_start > timedelta(days=max_days):
            raise RangeError(f"Диапазон не может превышать {max_days} дней")

    @classmethod
    def compute_availability(cls, event_type_id, range_start, range_end,
                             include_external_calendar=True, now=None, use_cache=True):
        """
        Рассчитывает упорядоченный список слотов типа события на диапазон
        (с использованием кеша)
        :return: список ComputedSlot
        """
        cls.validate_range(range_start, range_end)
        event_type = cls.get_event_type(event_type_id)

        if use_cache:
            cached_slots = AvailabilityCache.get_availability(
                event_type.id, range_start, range_end, include_external_calendar
            )
            if cached_slots is not None:
                logger.debug(f"Слоты получены из кеша для {event_type.slug}")
                return cls._drop_started(cached_slots, now)

        context = cls.load_context(event_type, range_start, range_end)

        busy = None
        if include_external_calendar:
            busy = fetch_busy_intervals(
                get_busy_time_provider(), event_type.calendar_owner, range_start, range_end
            )

        # В кеш кладём слоты без отсечения по текущему времени
        slots = compute_slots(context, range_start, range_end, busy=busy)

        if use_cache:
            AvailabilityCache.set_availability(
                event_type.id, range_start, range_end, include_external_calendar, slots
            )

        logger.debug(
            f"Слоты рассчитаны для {event_type.slug}: {len(slots)} "
            f"({range_start.isoformat()} - {range_end.isoformat()})"
        )
        return cls._drop_started(slots, now)

    @classmethod
    def check_slot_still_available(cls, event_type_id, slot_start, slot_end, now=None,
                                   include_external_calendar=True, attendees=1):
        """
        Повторная проверка конкретного слота перед записью бронирования
        :return: ReservationDecision (allow или deny со SlotConflict)
        """
        event_type = cls.get_event_type(event_type_id)
        return cls.evaluate_slot(
            event_type, slot_start, slot_end, now=now,
            include_external_calendar=include_external_calendar, attendees=attendees
        )

    @classmethod
    def evaluate_slot(cls, event_type, slot_start, slot_end, now=None,
                      include_external_calendar=True, attendees=1):
        """
        Проверяет один слот по только что прочитанным данным.
        Вызывается и из транзакции создания бронирования.
        """
        if now is None:
            now = timezone.now()

        # Окно чтения с запасом в сутки, чтобы развернуть правила целыми днями
        context = cls.load_context(
            event_type, slot_start - timedelta(days=1), slot_end + timedelta(days=1)
        )
        slot = Window(slot_start, slot_end)

        offered = candidate_windows(
            context, slot_start - timedelta(days=1), slot_end + timedelta(days=1)
        )
        if slot not in offered:
            decision = check_slot(
                context.event_type, slot, context.blocked, context.bookings, now=now,
                one_off_windows=context.one_off_windows
            )
            # Прошедшее время и неверная длительность важнее отсутствия в расписании
            if decision.allowed:
                decision = ReservationDecision.deny(CONFLICT_OUTSIDE_SCHEDULE)
            return decision

        busy = None
        if include_external_calendar:
            busy = fetch_busy_intervals(
                get_busy_time_provider(), event_type.calendar_owner, slot_start, slot_end
            )

        decision = check_slot(
            context.event_type, slot, context.blocked, context.bookings,
            busy=busy, now=now, attendees=attendees,
            one_off_windows=context.one_off_windows
        )
        logger.debug(f"Проверка слота {slot_start.isoformat()} для {event_type.slug}: {decision.state}")
        return decision

    @classmethod
    def load_context(cls, event_type, range_start, range_end):
        """
        Читает правила, разовые слоты, блокировки и бронирования, которые
        могут повлиять на слоты с началом внутри диапазона
        """
        config = event_type.to_config()
        margin = config.buffer_before + config.buffer_after
        # Слот может выйти за конец диапазона не более чем на свою длительность
        read_start = range_start - margin
        read_end = range_end + config.duration + margin

        rules = tuple(
            schedule.to_rule()
            for schedule in event_type.schedules.filter(is_active=True)
        )
        one_off = cls._load_one_off_windows(event_type, config, rules, range_start, range_end)
        blocked = tuple(
            item.to_window()
            for item in BlockedTime.objects.filter(
                Q(event_type=event_type) | Q(event_type__isnull=True),
                starts_at__lt=read_end,
                ends_at__gt=read_start,
            )
        )
        bookings = tuple(
            booking.to_window()
            for booking in Booking.objects.filter(
                event_type=event_type,
                starts_at__lt=read_end,
                ends_at__gt=read_start,
            ).exclude(status='cancelled').order_by('starts_at')
        )

        return AvailabilityContext(
            event_type=config,
            rules=rules,
            one_off_windows=one_off,
            blocked=blocked,
            bookings=bookings,
        )

    @classmethod
    def _load_one_off_windows(cls, event_type, config, rules, range_start, range_end):
        """
        Разовые окна, пересекающие диапазон, вместе со всеми окнами,
        сцепленными с ними через правила или другие разовые окна.
        Окно, начавшееся до диапазона, сдвигает сетку слотов внутри него.
        """
        span_start, span_end = range_start, range_end
        while True:
            one_off = tuple(
                slot.to_window()
                for slot in event_type.slots.filter(
                    is_active=True,
                    starts_at__lte=span_end,
                    ends_at__gte=span_start,
                )
            )
            context = AvailabilityContext(event_type=config, rules=rules, one_off_windows=one_off)
            covering = schedule_windows(context, range_start, range_end)

            new_start = min([span_start] + [window.start for window in covering])
            new_end = max([span_end] + [window.end for window in covering])
            if (new_start, new_end) == (span_start, span_end):
                return one_off
            span_start, span_end = new_start, new_end

    @classmethod
    def handle_event_type_change(cls, event_type_id):
        """
        Обрабатывает изменение конфигурации или бронирований (инвалидация кеша)
        """
        logger.info(f"Инвалидация кеша доступности для типа события: {event_type_id}")
        AvailabilityCache.invalidate_event_type(event_type_id)

    @classmethod
    def handle_global_change(cls):
        """
        Глобальная блокировка затрагивает все типы событий
        """
        event_type_ids = list(EventType.objects.values_list('id', flat=True))
        logger.info(f"Инвалидация кеша доступности для всех типов событий: {len(event_type_ids)}")
        AvailabilityCache.invalidate_multiple_event_types(event_type_ids)

    @staticmethod
    def _drop_started(slots, now):
        if now is None:
            now = timezone.now()
        return [slot for slot in slots if slot.start > now]
