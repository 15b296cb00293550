from rest_framework import serializers, viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from datetime import timedelta
import uuid

from .engine import available_dates, group_slots_by_date, next_available_slot
from .exceptions import ConfigurationError, RangeError
from .models import AvailabilitySchedule, BlockedTime, EventSlot, EventType
from .permissions import IsAdminUser
from .serializers import (
    AvailabilityQuerySerializer, AvailabilityScheduleSerializer, BlockedTimeSerializer,
    ComputedSlotSerializer, EventSlotSerializer, EventTypeAdminSerializer,
    EventTypeSerializer, SlotCheckSerializer,
)
from .services import AvailabilityService

EVENT_TYPES_CACHE_KEY = 'active_event_types_list'


class EventTypeViewSet(viewsets.ViewSet):
    """
    ViewSet для типов событий и расчёта их доступности
    """
    lookup_value_regex = '[^/]+'

    def get_permissions(self):
        """
        Определение прав доступа в зависимости от действия
        """
        if self.action in ['create', 'update', 'partial_update', 'destroy']:
            permission_classes = [IsAdminUser]
        else:
            permission_classes = [AllowAny]
        return [permission() for permission in permission_classes]

    def list(self, request):
        """
        GET /event-types - список активных типов событий
        """
        cached_data = cache.get(EVENT_TYPES_CACHE_KEY)
        if cached_data is not None:
            return Response(cached_data)

        event_types = EventType.objects.filter(is_active=True).order_by('title')
        serializer = EventTypeSerializer(event_types, many=True)

        # Кешируем на 60 секунд
        cache.set(EVENT_TYPES_CACHE_KEY, serializer.data, 60)

        return Response(serializer.data)

    def retrieve(self, request, pk=None):
        """
        GET /event-types/{id или slug} - детали типа события
        """
        event_type = self._get_event_type(pk)
        if event_type is None:
            return self._not_found()
        return Response(EventTypeSerializer(event_type).data)

    def create(self, request):
        """
        POST /event-types - создание типа события
        """
        serializer = EventTypeAdminSerializer(data=request.data)
        if serializer.is_valid():
            event_type = serializer.save()
            cache.delete(EVENT_TYPES_CACHE_KEY)
            return Response(EventTypeAdminSerializer(event_type).data, status=status.HTTP_201_CREATED)

        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    def update(self, request, pk=None):
        """
        PUT /event-types/{id} - полное обновление
        """
        return self._save(request, pk, partial=False)

    def partial_update(self, request, pk=None):
        """
        PATCH /event-types/{id} - частичное обновление
        """
        return self._save(request, pk, partial=True)

    def destroy(self, request, pk=None):
        """
        DELETE /event-types/{id} - деактивация типа события
        """
        event_type = self._get_event_type(pk, active_only=False)
        if event_type is None:
            return self._not_found()

        # Деактивируем вместо удаления: бронирования ссылаются на тип события
        event_type.is_active = False
        event_type.save()
        cache.delete(EVENT_TYPES_CACHE_KEY)

        return Response({'message': 'Тип события деактивирован'}, status=status.HTTP_200_OK)

    @action(detail=True, methods=['get'], url_path='availability')
    def availability(self, request, pk=None):
        """
        GET /event-types/{id}/availability?start=...&end=...&external=true
        Слоты типа события на диапазон (по умолчанию ближайшие 30 дней)
        """
        query = AvailabilityQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        event_type = self._get_event_type(pk)
        if event_type is None:
            return self._not_found()

        now = timezone.now()
        range_start = query.validated_data.get('start') or now.replace(second=0, microsecond=0)
        range_end = query.validated_data.get('end') or (
            range_start + timedelta(days=settings.BOOKING_DEFAULT_RANGE_DAYS)
        )

        try:
            slots = AvailabilityService.compute_availability(
                event_type.id,
                range_start,
                range_end,
                include_external_calendar=query.validated_data['external'],
                now=now,
            )
        except (RangeError, ConfigurationError) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        next_slot = next_available_slot(slots, now=now)
        return Response({
            'event_type': EventTypeSerializer(event_type).data,
            'start': range_start.isoformat(),
            'end': range_end.isoformat(),
            'slots': ComputedSlotSerializer(slots, many=True).data,
            'available_dates': [day.isoformat() for day in available_dates(slots, event_type.timezone)],
            'slots_by_date': {
                day.isoformat(): ComputedSlotSerializer(day_slots, many=True).data
                for day, day_slots in group_slots_by_date(slots, event_type.timezone).items()
            },
            'next_available': ComputedSlotSerializer(next_slot).data if next_slot else None,
            'available_slots': len([slot for slot in slots if slot.available]),
            'total_slots': len(slots),
            'calculated_at': now.isoformat(),
        })

    @action(detail=True, methods=['post'], url_path='check')
    def check(self, request, pk=None):
        """
        POST /event-types/{id}/check - проверка, свободен ли ещё слот
        """
        serializer = SlotCheckSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        event_type = self._get_event_type(pk)
        if event_type is None:
            return self._not_found()

        starts_at = serializer.validated_data['starts_at']
        ends_at = starts_at + timedelta(minutes=event_type.duration_minutes)

        try:
            decision = AvailabilityService.check_slot_still_available(
                event_type.id, starts_at, ends_at,
                attendees=serializer.validated_data['attendees'],
            )
        except ConfigurationError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'allowed': decision.allowed,
            'state': decision.state,
            'reason': decision.conflict.code if decision.conflict else None,
            'message': decision.conflict.message if decision.conflict else None,
            'remaining_seats': decision.remaining_seats,
        })

    def _save(self, request, pk, partial):
        event_type = self._get_event_type(pk, active_only=False)
        if event_type is None:
            return self._not_found()

        serializer = EventTypeAdminSerializer(event_type, data=request.data, partial=partial)
        if serializer.is_valid():
            updated = serializer.save()
            cache.delete(EVENT_TYPES_CACHE_KEY)
            return Response(EventTypeAdminSerializer(updated).data)

        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    @staticmethod
    def _get_event_type(identifier, active_only=True):
        try:
            return AvailabilityService.get_event_type(identifier, active_only=active_only)
        except EventType.DoesNotExist:
            return None

    @staticmethod
    def _not_found():
        return Response(
            {'error': 'Тип события не найден или неактивен'},
            status=status.HTTP_404_NOT_FOUND
        )


class EventTypeScopedViewSet(viewsets.ModelViewSet):
    """
    Базовый ViewSet для настроек расписания (только для администраторов),
    фильтр ?event_type=<uuid>
    """
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        queryset = self.queryset.all()
        event_type_id = self.request.query_params.get('event_type')
        if event_type_id:
            try:
                event_type_id = uuid.UUID(event_type_id)
            except ValueError:
                raise serializers.ValidationError(
                    {'event_type': f"Неверный идентификатор типа события: {event_type_id}"}
                )
            queryset = queryset.filter(event_type_id=event_type_id)
        return queryset


class AvailabilityScheduleViewSet(EventTypeScopedViewSet):
    queryset = AvailabilitySchedule.objects.select_related('event_type')
    serializer_class = AvailabilityScheduleSerializer


class EventSlotViewSet(EventTypeScopedViewSet):
    queryset = EventSlot.objects.select_related('event_type')
    serializer_class = EventSlotSerializer


class BlockedTimeViewSet(EventTypeScopedViewSet):
    queryset = BlockedTime.objects.select_related('event_type')
    serializer_class = BlockedTimeSerializer
