from django.contrib import admin
from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['customer_name', 'event_type', 'starts_at', 'ends_at', 'attendee_count', 'status', 'created_at']
    list_filter = ['status', 'event_type', 'created_at']
    search_fields = ['customer_name', 'customer_email']
    ordering = ['-created_at']
    readonly_fields = ['idempotency_key', 'cancelled_at', 'created_at', 'updated_at']
