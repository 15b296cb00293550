import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import availability.models
import availability.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='EventType',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('slug', models.SlugField(max_length=100, unique=True, verbose_name='Слаг')),
                ('title', models.CharField(max_length=255, verbose_name='Название')),
                ('description', models.TextField(blank=True, default='', verbose_name='Описание')),
                ('duration_minutes', models.PositiveIntegerField(default=60, validators=[django.core.validators.MinValueValidator(1)], verbose_name='Длительность (мин)')),
                ('buffer_before_minutes', models.PositiveIntegerField(default=0, validators=[availability.validators.validate_buffer_minutes], verbose_name='Буфер до (мин)')),
                ('buffer_after_minutes', models.PositiveIntegerField(default=0, validators=[availability.validators.validate_buffer_minutes], verbose_name='Буфер после (мин)')),
                ('max_attendees', models.PositiveIntegerField(default=1, help_text='Максимальное количество участников одновременно', validators=[django.core.validators.MinValueValidator(1)], verbose_name='Вместимость')),
                ('location_type', models.CharField(choices=[('online', 'Онлайн'), ('on_location', 'На месте'), ('hybrid', 'Гибрид')], default='online', max_length=20, verbose_name='Формат')),
                ('price_cents', models.PositiveIntegerField(default=0, verbose_name='Цена (центы)')),
                ('timezone', models.CharField(default=availability.models.default_timezone, max_length=64, validators=[availability.validators.TimezoneValidator()], verbose_name='Часовой пояс')),
                ('calendar_owner', models.CharField(blank=True, default='', help_text='Почта календаря для проверки занятости, пусто - значение по умолчанию', max_length=255, verbose_name='Владелец календаря')),
                ('requires_approval', models.BooleanField(default=False, verbose_name='Требует подтверждения')),
                ('is_active', models.BooleanField(default=True, verbose_name='Активен')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Дата создания')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Дата обновления')),
            ],
            options={
                'verbose_name': 'Тип события',
                'verbose_name_plural': 'Типы событий',
                'db_table': 'event_types',
                'ordering': ['title'],
                'indexes': [models.Index(fields=['is_active', 'created_at'], name='event_type_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='AvailabilitySchedule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('day_of_week', models.PositiveSmallIntegerField(choices=[(0, 'Воскресенье'), (1, 'Понедельник'), (2, 'Вторник'), (3, 'Среда'), (4, 'Четверг'), (5, 'Пятница'), (6, 'Суббота')], validators=[django.core.validators.MaxValueValidator(6)], verbose_name='День недели')),
                ('start_time', models.TimeField(verbose_name='Начало')),
                ('end_time', models.TimeField(verbose_name='Окончание')),
                ('is_active', models.BooleanField(default=True, verbose_name='Активно')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event_type', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='schedules', to='availability.eventtype', verbose_name='Тип события')),
            ],
            options={
                'verbose_name': 'Правило доступности',
                'verbose_name_plural': 'Правила доступности',
                'db_table': 'availability_schedules',
                'ordering': ['day_of_week', 'start_time'],
                'indexes': [models.Index(fields=['event_type', 'is_active'], name='schedule_event_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='EventSlot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('starts_at', models.DateTimeField(verbose_name='Начало')),
                ('ends_at', models.DateTimeField(verbose_name='Окончание')),
                ('max_attendees', models.PositiveIntegerField(blank=True, help_text='Пусто - вместимость типа события', null=True, validators=[django.core.validators.MinValueValidator(1)], verbose_name='Вместимость')),
                ('is_active', models.BooleanField(default=True, verbose_name='Активен')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event_type', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='slots', to='availability.eventtype', verbose_name='Тип события')),
            ],
            options={
                'verbose_name': 'Разовый слот',
                'verbose_name_plural': 'Разовые слоты',
                'db_table': 'event_slots',
                'ordering': ['starts_at'],
                'indexes': [models.Index(fields=['event_type', 'starts_at'], name='event_slot_event_start_idx')],
            },
        ),
        migrations.CreateModel(
            name='BlockedTime',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('starts_at', models.DateTimeField(verbose_name='Начало')),
                ('ends_at', models.DateTimeField(verbose_name='Окончание')),
                ('reason', models.CharField(blank=True, default='', max_length=255, verbose_name='Причина')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event_type', models.ForeignKey(blank=True, help_text='Пусто - блокировка для всех типов событий', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='blocked_times', to='availability.eventtype', verbose_name='Тип события')),
            ],
            options={
                'verbose_name': 'Блокировка',
                'verbose_name_plural': 'Блокировки',
                'db_table': 'blocked_times',
                'ordering': ['starts_at'],
                'indexes': [models.Index(fields=['starts_at', 'ends_at'], name='blocked_time_range_idx')],
            },
        ),
    ]
