import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from availability.domain import BookingWindow
from availability.models import EventType


class Booking(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('cancelled', 'Cancelled'),
        ('completed', 'Completed'),
        ('no_show', 'No show'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event_type = models.ForeignKey(EventType, on_delete=models.PROTECT, related_name='bookings')
    event_slot = models.ForeignKey(
        'availability.EventSlot',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=50, blank=True, default='')
    customer_notes = models.TextField(blank=True, default='')
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    timezone = models.CharField(max_length=64, default='Europe/Amsterdam')
    attendee_count = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    idempotency_key = models.CharField(max_length=255, unique=True, null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default='')
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bookings'
        indexes = [
            models.Index(fields=['event_type', 'starts_at'], name='booking_event_start_idx'),
            models.Index(fields=['status'], name='booking_status_idx'),
            models.Index(fields=['customer_email'], name='booking_email_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(starts_at__lt=F('ends_at')),
                name='booking_starts_before_ends',
            ),
            models.CheckConstraint(
                condition=Q(attendee_count__gte=1),
                name='booking_attendee_count_positive',
            ),
        ]
        ordering = ['-starts_at']

    def __str__(self):
        return f"{self.customer_name} - {self.starts_at} ({self.status})"

    def clean(self):
        if self.starts_at >= self.ends_at:
            raise ValidationError('Start time must be before end time')

    def to_window(self):
        return BookingWindow(
            start=self.starts_at,
            end=self.ends_at,
            status=self.status,
            attendee_count=self.attendee_count,
        )
