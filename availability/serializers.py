from rest_framework import serializers
from .models import AvailabilitySchedule, BlockedTime, EventSlot, EventType
from .validators import TimeRangeValidator


class EventTypeSerializer(serializers.ModelSerializer):
    """Публичный сериализатор типа события"""

    class Meta:
        model = EventType
        fields = [
            'id', 'slug', 'title', 'description', 'duration_minutes',
            'buffer_before_minutes', 'buffer_after_minutes', 'max_attendees',
            'location_type', 'price_cents', 'timezone', 'requires_approval',
        ]
        read_only_fields = fields


class EventTypeAdminSerializer(serializers.ModelSerializer):
    """Сериализатор для создания и обновления типа события"""

    class Meta:
        model = EventType
        fields = [
            'id', 'slug', 'title', 'description', 'duration_minutes',
            'buffer_before_minutes', 'buffer_after_minutes', 'max_attendees',
            'location_type', 'price_cents', 'timezone', 'calendar_owner',
            'requires_approval', 'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_duration_minutes(self, value):
        if value < 1:
            raise serializers.ValidationError('Длительность должна быть больше нуля')
        return value

    def validate_max_attendees(self, value):
        """Валидация вместимости"""
        if value < 1:
            raise serializers.ValidationError('Вместимость должна быть не менее 1')
        return value


class AvailabilityScheduleSerializer(serializers.ModelSerializer):

    class Meta:
        model = AvailabilitySchedule
        fields = ['id', 'event_type', 'day_of_week', 'start_time', 'end_time', 'is_active']
        validators = [TimeRangeValidator('start_time', 'end_time')]


class EventSlotSerializer(serializers.ModelSerializer):

    class Meta:
        model = EventSlot
        fields = ['id', 'event_type', 'starts_at', 'ends_at', 'max_attendees', 'is_active']
        validators = [TimeRangeValidator('starts_at', 'ends_at')]


class BlockedTimeSerializer(serializers.ModelSerializer):

    class Meta:
        model = BlockedTime
        fields = ['id', 'event_type', 'starts_at', 'ends_at', 'reason']
        validators = [TimeRangeValidator('starts_at', 'ends_at')]


class AvailabilityQuerySerializer(serializers.Serializer):
    """Параметры запроса доступности: ?start=...&end=...&external=true"""
    start = serializers.DateTimeField(required=False)
    end = serializers.DateTimeField(required=False)
    external = serializers.BooleanField(required=False, default=True)


class ComputedSlotSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    available = serializers.BooleanField()
    remaining_seats = serializers.IntegerField()


class SlotCheckSerializer(serializers.Serializer):
    starts_at = serializers.DateTimeField()
    attendees = serializers.IntegerField(min_value=1, default=1)
