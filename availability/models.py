from datetime import timedelta
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from .domain import BlockedWindow, EventTypeConfig, OneOffWindow, RecurringRule
from .validators import validate_buffer_minutes, validate_timezone


def default_timezone():
    return settings.BOOKING_TIMEZONE


class EventType(models.Model):
    """Тип бронируемого события"""

    LOCATION_CHOICES = [
        ('online', 'Онлайн'),
        ('on_location', 'На месте'),
        ('hybrid', 'Гибрид'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=100, unique=True, verbose_name='Слаг')
    title = models.CharField(max_length=255, verbose_name='Название')
    description = models.TextField(blank=True, default='', verbose_name='Описание')
    duration_minutes = models.PositiveIntegerField(
        default=60,
        validators=[MinValueValidator(1)],
        verbose_name='Длительность (мин)'
    )
    buffer_before_minutes = models.PositiveIntegerField(
        default=0, validators=[validate_buffer_minutes], verbose_name='Буфер до (мин)'
    )
    buffer_after_minutes = models.PositiveIntegerField(
        default=0, validators=[validate_buffer_minutes], verbose_name='Буфер после (мин)'
    )
    max_attendees = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        verbose_name='Вместимость',
        help_text='Максимальное количество участников одновременно'
    )
    location_type = models.CharField(
        max_length=20,
        choices=LOCATION_CHOICES,
        default='online',
        verbose_name='Формат'
    )
    price_cents = models.PositiveIntegerField(default=0, verbose_name='Цена (центы)')
    timezone = models.CharField(
        max_length=64,
        default=default_timezone,
        validators=[validate_timezone],
        verbose_name='Часовой пояс'
    )
    calendar_owner = models.CharField(
        max_length=255,
        blank=True,
        default='',
        verbose_name='Владелец календаря',
        help_text='Почта календаря для проверки занятости, пусто - значение по умолчанию'
    )
    requires_approval = models.BooleanField(default=False, verbose_name='Требует подтверждения')
    is_active = models.BooleanField(default=True, verbose_name='Активен')
    created_at = models.DateTimeField(auto_now_add=True, verbose_name='Дата создания')
    updated_at = models.DateTimeField(auto_now=True, verbose_name='Дата обновления')

    class Meta:
        db_table = 'event_types'
        verbose_name = 'Тип события'
        verbose_name_plural = 'Типы событий'
        indexes = [
            models.Index(fields=['is_active', 'created_at'], name='event_type_active_idx'),
        ]
        ordering = ['title']

    def __str__(self):
        return f"{self.title} ({self.duration_minutes} мин)"

    def to_config(self):
        """Неизменяемая конфигурация для движка доступности"""
        return EventTypeConfig(
            id=str(self.id),
            duration=timedelta(minutes=self.duration_minutes),
            buffer_before=timedelta(minutes=self.buffer_before_minutes),
            buffer_after=timedelta(minutes=self.buffer_after_minutes),
            capacity=self.max_attendees,
            requires_approval=self.requires_approval,
            is_active=self.is_active,
            timezone=self.timezone,
            calendar_owner=self.calendar_owner,
        )


class AvailabilitySchedule(models.Model):
    """Еженедельное правило доступности: «каждый понедельник 09:00-17:00»"""

    DAY_CHOICES = [
        (0, 'Воскресенье'),
        (1, 'Понедельник'),
        (2, 'Вторник'),
        (3, 'Среда'),
        (4, 'Четверг'),
        (5, 'Пятница'),
        (6, 'Суббота'),
    ]

    event_type = models.ForeignKey(
        EventType,
        on_delete=models.CASCADE,
        related_name='schedules',
        verbose_name='Тип события'
    )
    day_of_week = models.PositiveSmallIntegerField(
        choices=DAY_CHOICES,
        validators=[MaxValueValidator(6)],
        verbose_name='День недели'
    )
    start_time = models.TimeField(verbose_name='Начало')
    end_time = models.TimeField(verbose_name='Окончание')
    is_active = models.BooleanField(default=True, verbose_name='Активно')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'availability_schedules'
        verbose_name = 'Правило доступности'
        verbose_name_plural = 'Правила доступности'
        indexes = [
            models.Index(fields=['event_type', 'is_active'], name='schedule_event_active_idx'),
        ]
        ordering = ['day_of_week', 'start_time']

    def __str__(self):
        return f"{self.get_day_of_week_display()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError('Время окончания должно быть позже времени начала')

    def to_rule(self):
        return RecurringRule(
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            is_active=self.is_active,
        )


class EventSlot(models.Model):
    """Разовый слот для исключительных дат (например, отдельный воркшоп)"""

    event_type = models.ForeignKey(
        EventType,
        on_delete=models.CASCADE,
        related_name='slots',
        verbose_name='Тип события'
    )
    starts_at = models.DateTimeField(verbose_name='Начало')
    ends_at = models.DateTimeField(verbose_name='Окончание')
    max_attendees = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        verbose_name='Вместимость',
        help_text='Пусто - вместимость типа события'
    )
    is_active = models.BooleanField(default=True, verbose_name='Активен')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'event_slots'
        verbose_name = 'Разовый слот'
        verbose_name_plural = 'Разовые слоты'
        indexes = [
            models.Index(fields=['event_type', 'starts_at'], name='event_slot_event_start_idx'),
        ]
        ordering = ['starts_at']

    def __str__(self):
        return f"{self.event_type_id}: {self.starts_at} - {self.ends_at}"

    def clean(self):
        if self.starts_at and self.ends_at and self.starts_at >= self.ends_at:
            raise ValidationError('Start time must be before end time')

    def to_window(self):
        return OneOffWindow(
            start=self.starts_at,
            end=self.ends_at,
            is_active=self.is_active,
            max_attendees=self.max_attendees,
        )


class BlockedTime(models.Model):
    """Заблокированное время: праздники, обслуживание, ручные удержания"""

    event_type = models.ForeignKey(
        EventType,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='blocked_times',
        verbose_name='Тип события',
        help_text='Пусто - блокировка для всех типов событий'
    )
    starts_at = models.DateTimeField(verbose_name='Начало')
    ends_at = models.DateTimeField(verbose_name='Окончание')
    reason = models.CharField(max_length=255, blank=True, default='', verbose_name='Причина')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'blocked_times'
        verbose_name = 'Блокировка'
        verbose_name_plural = 'Блокировки'
        indexes = [
            models.Index(fields=['starts_at', 'ends_at'], name='blocked_time_range_idx'),
        ]
        ordering = ['starts_at']

    def __str__(self):
        scope = self.event_type_id or 'все'
        return f"{self.starts_at} - {self.ends_at} ({scope})"

    def clean(self):
        if self.starts_at and self.ends_at and self.starts_at >= self.ends_at:
            raise ValidationError('Start time must be before end time')

    def to_window(self):
        return BlockedWindow(
            start=self.starts_at,
            end=self.ends_at,
            event_type_id=str(self.event_type_id) if self.event_type_id else None,
            reason=self.reason,
        )
