"""
Типизированные записи, которыми обменивается движок расчёта доступности.

Все моменты времени - aware datetime в UTC, интервалы полуоткрытые [start, end).
Записи создаются из моделей Django на границе (services.py) и дальше
не меняются.
"""
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Optional

from .exceptions import ConfigurationError

# Статусы бронирования
BOOKING_PENDING = 'pending'
BOOKING_CONFIRMED = 'confirmed'
BOOKING_CANCELLED = 'cancelled'
BOOKING_COMPLETED = 'completed'
BOOKING_NO_SHOW = 'no_show'

BOOKING_STATUSES = (
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_NO_SHOW,
)


@dataclass(frozen=True, order=True)
class Window:
    """Полуоткрытый интервал времени [start, end)"""
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class EventTypeConfig:
    """Конфигурация типа события, неизменяемая в рамках одного запроса"""
    id: str
    duration: timedelta
    buffer_before: timedelta = timedelta(0)
    buffer_after: timedelta = timedelta(0)
    capacity: int = 1
    requires_approval: bool = False
    is_active: bool = True
    timezone: str = 'UTC'
    calendar_owner: str = ''

    def __post_init__(self):
        if self.duration <= timedelta(0):
            raise ConfigurationError(
                f"Длительность события {self.id} должна быть больше нуля"
            )
        if self.buffer_before < timedelta(0) or self.buffer_after < timedelta(0):
            raise ConfigurationError(
                f"Буферы события {self.id} не могут быть отрицательными"
            )
        if self.capacity < 1:
            raise ConfigurationError(
                f"Вместимость события {self.id} должна быть не менее 1"
            )


@dataclass(frozen=True)
class RecurringRule:
    """Еженедельное правило: день недели (0 = воскресенье) и локальное время"""
    day_of_week: int
    start_time: time
    end_time: time
    is_active: bool = True

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ConfigurationError(
                f"День недели должен быть в диапазоне 0-6, получено {self.day_of_week}"
            )
        if self.end_time <= self.start_time:
            raise ConfigurationError(
                f"Время окончания {self.end_time} должно быть позже начала {self.start_time}"
            )


@dataclass(frozen=True)
class OneOffWindow:
    """
    Разовый слот с абсолютными границами.
    max_attendees переопределяет вместимость типа события для слотов внутри окна.
    """
    start: datetime
    end: datetime
    is_active: bool = True
    max_attendees: Optional[int] = None

    def __post_init__(self):
        _require_ordered(self.start, self.end, 'Разовый слот')
        if self.max_attendees is not None and self.max_attendees < 1:
            raise ConfigurationError('Вместимость разового слота должна быть не менее 1')

    @property
    def window(self) -> Window:
        return Window(self.start, self.end)


@dataclass(frozen=True)
class BlockedWindow:
    """Заблокированный период: глобальный (event_type_id=None) или для одного типа"""
    start: datetime
    end: datetime
    event_type_id: Optional[str] = None
    reason: str = ''

    def __post_init__(self):
        _require_ordered(self.start, self.end, 'Блокировка')

    @property
    def window(self) -> Window:
        return Window(self.start, self.end)

    def applies_to(self, event_type_id: str) -> bool:
        return self.event_type_id is None or str(self.event_type_id) == str(event_type_id)


@dataclass(frozen=True)
class BookingWindow:
    """Существующее бронирование в том виде, в каком его видит движок"""
    start: datetime
    end: datetime
    status: str = BOOKING_CONFIRMED
    attendee_count: int = 1

    def __post_init__(self):
        _require_ordered(self.start, self.end, 'Бронирование')
        if self.status not in BOOKING_STATUSES:
            raise ConfigurationError(f"Неизвестный статус бронирования: {self.status}")
        if self.attendee_count < 1:
            raise ConfigurationError('Количество участников должно быть не менее 1')

    @property
    def window(self) -> Window:
        return Window(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return self.status != BOOKING_CANCELLED


@dataclass(frozen=True)
class ComputedSlot:
    """Результат расчёта: слот, его доступность и оставшиеся места"""
    start: datetime
    end: datetime
    available: bool
    remaining_seats: int

    @property
    def window(self) -> Window:
        return Window(self.start, self.end)

    def as_dict(self):
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'available': self.available,
            'remaining_seats': self.remaining_seats,
        }


@dataclass(frozen=True)
class AvailabilityContext:
    """Все данные, необходимые для расчёта доступности одного типа события"""
    event_type: EventTypeConfig
    rules: tuple = field(default_factory=tuple)
    one_off_windows: tuple = field(default_factory=tuple)
    blocked: tuple = field(default_factory=tuple)
    bookings: tuple = field(default_factory=tuple)


def _require_ordered(start, end, label):
    if start.tzinfo is None or end.tzinfo is None:
        raise ConfigurationError(f"{label}: время должно содержать часовой пояс")
    if end <= start:
        raise ConfigurationError(f"{label}: окончание должно быть позже начала")
