from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AvailabilityScheduleViewSet, BlockedTimeViewSet, EventSlotViewSet, EventTypeViewSet

router = DefaultRouter()
router.register('event-types', EventTypeViewSet, basename='event-type')
router.register('schedules', AvailabilityScheduleViewSet, basename='schedule')
router.register('event-slots', EventSlotViewSet, basename='event-slot')
router.register('blocked-times', BlockedTimeViewSet, basename='blocked-time')

urlpatterns = [
    path('', include(router.urls)),
]
