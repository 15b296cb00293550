from django.contrib import admin
from .models import AvailabilitySchedule, BlockedTime, EventSlot, EventType


class AvailabilityScheduleInline(admin.TabularInline):
    model = AvailabilitySchedule
    extra = 0


@admin.register(EventType)
class EventTypeAdmin(admin.ModelAdmin):
    list_display = ['title', 'slug', 'duration_minutes', 'max_attendees', 'is_active']
    list_filter = ['is_active', 'location_type']
    search_fields = ['title', 'slug']
    prepopulated_fields = {'slug': ('title',)}
    inlines = [AvailabilityScheduleInline]


@admin.register(EventSlot)
class EventSlotAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'starts_at', 'ends_at', 'max_attendees', 'is_active']
    list_filter = ['is_active', 'event_type']
    ordering = ['-starts_at']


@admin.register(BlockedTime)
class BlockedTimeAdmin(admin.ModelAdmin):
    list_display = ['starts_at', 'ends_at', 'event_type', 'reason']
    list_filter = ['event_type']
    ordering = ['-starts_at']
