from rest_framework import serializers
from availability.models import EventSlot
from availability.validators import validate_timezone
from .models import Booking


class BookingCreateSerializer(serializers.Serializer):
    event_type = serializers.CharField(max_length=100)
    event_slot = serializers.PrimaryKeyRelatedField(
        queryset=EventSlot.objects.filter(is_active=True),
        required=False,
        allow_null=True
    )
    starts_at = serializers.DateTimeField()
    customer_name = serializers.CharField(min_length=2, max_length=255)
    customer_email = serializers.EmailField()
    customer_phone = serializers.CharField(max_length=50, required=False, allow_blank=True)
    customer_notes = serializers.CharField(required=False, allow_blank=True)
    attendee_count = serializers.IntegerField(min_value=1, default=1)
    timezone = serializers.CharField(max_length=64, required=False, validators=[validate_timezone])
    idempotency_key = serializers.CharField(max_length=255, required=False)


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class BookingSerializer(serializers.ModelSerializer):
    event_type_slug = serializers.CharField(source='event_type.slug', read_only=True)

    class Meta:
        model = Booking
        fields = '__all__'
        read_only_fields = ['idempotency_key', 'status', 'cancelled_at']
