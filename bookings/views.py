from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.generics import get_object_or_404
from django.utils.dateparse import parse_datetime
import uuid

from availability.exceptions import ConfigurationError
from availability.models import EventType
from availability.permissions import IsAdminUser
from .models import Booking
from .serializers import BookingCancelSerializer, BookingCreateSerializer, BookingSerializer
from .services import BookingService, BookingStateError, InvalidBookingRequest


class BookingViewSet(viewsets.ViewSet):
    """
    ViewSet для бронирований
    """

    def get_permissions(self):
        if self.action in ['create', 'cancel']:
            permission_classes = [AllowAny]
        else:
            permission_classes = [IsAdminUser]
        return [permission() for permission in permission_classes]

    def list(self, request):
        """
        GET /bookings?status=&event_type=&start=&end= - список бронирований (админ)
        """
        bookings = Booking.objects.select_related('event_type').order_by('-starts_at')

        status_filter = request.query_params.get('status')
        if status_filter:
            bookings = bookings.filter(status=status_filter)

        event_type_id = request.query_params.get('event_type')
        start = request.query_params.get('start')
        end = request.query_params.get('end')
        try:
            if event_type_id:
                bookings = bookings.filter(event_type_id=self._parse_uuid(event_type_id))
            if start:
                bookings = bookings.filter(ends_at__gt=self._parse(start))
            if end:
                bookings = bookings.filter(starts_at__lt=self._parse(end))
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(BookingSerializer(bookings, many=True).data)

    def retrieve(self, request, pk=None):
        booking = get_object_or_404(Booking, pk=pk)
        return Response(BookingSerializer(booking).data)

    def create(self, request):
        """
        POST /bookings - создание бронирования с повторной проверкой слота
        """
        serializer = BookingCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        event_slot = data.get('event_slot')
        try:
            decision, booking = BookingService.create_booking(
                event_type_id=data['event_type'],
                starts_at=data['starts_at'],
                customer_name=data['customer_name'],
                customer_email=data['customer_email'],
                customer_phone=data.get('customer_phone', ''),
                customer_notes=data.get('customer_notes', ''),
                attendee_count=data['attendee_count'],
                booking_timezone=data.get('timezone'),
                idempotency_key=data.get('idempotency_key'),
                event_slot_id=event_slot.pk if event_slot else None,
            )
        except EventType.DoesNotExist:
            return Response(
                {'error': 'Тип события не найден или неактивен'},
                status=status.HTTP_404_NOT_FOUND
            )
        except (ConfigurationError, InvalidBookingRequest) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        if booking is None:
            return Response(
                {
                    'error': decision.conflict.message,
                    'reason': decision.conflict.code,
                },
                status=status.HTTP_409_CONFLICT
            )

        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        """
        POST /bookings/{id}/cancel - отмена бронирования
        """
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        get_object_or_404(Booking, pk=pk)
        try:
            booking = BookingService.cancel_booking(pk, serializer.validated_data['reason'])
        except BookingStateError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=['post'], url_path='confirm')
    def confirm(self, request, pk=None):
        """
        POST /bookings/{id}/confirm - ручное подтверждение (админ)
        """
        get_object_or_404(Booking, pk=pk)
        try:
            booking = BookingService.confirm_booking(pk)
        except BookingStateError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(BookingSerializer(booking).data)

    @staticmethod
    def _parse(value):
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"Неверный формат даты: {value}")
        return parsed

    @staticmethod
    def _parse_uuid(value):
        try:
            return uuid.UUID(value)
        except ValueError:
            raise ValueError(f"Неверный идентификатор типа события: {value}")
