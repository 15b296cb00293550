"""
Повторная проверка слота непосредственно перед созданием бронирования.

Проверка закрывает большую часть гонки между показом доступности и записью,
но окончательное решение принимает транзакционная запись в хранилище
(см. bookings/services.py).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .domain import BlockedWindow, BookingWindow, EventTypeConfig, OneOffWindow, Window
from .capacity import remaining_seats, slot_capacity
from .exclusions import applicable_blocks, is_blocked, overlapping_bookings
from .intervals import overlaps

# Состояния заявки на слот
PROPOSED = 'proposed'
CONFIRMED = 'confirmed'
REJECTED = 'rejected'

# Причины отказа
CONFLICT_PAST = 'past'
CONFLICT_BLOCKED = 'blocked'
CONFLICT_BOOKED = 'booked'
CONFLICT_FULL = 'full'
CONFLICT_CALENDAR_BUSY = 'calendar_busy'
CONFLICT_OUTSIDE_SCHEDULE = 'outside_schedule'
CONFLICT_INVALID_DURATION = 'invalid_duration'
CONFLICT_LOCKED = 'locked'

CONFLICT_MESSAGES = {
    CONFLICT_PAST: 'Этот слот уже прошёл',
    CONFLICT_BLOCKED: 'Этот слот недоступен',
    CONFLICT_BOOKED: 'Этот слот уже забронирован',
    CONFLICT_FULL: 'Свободных мест больше нет',
    CONFLICT_CALENDAR_BUSY: 'Этот слот занят в календаре',
    CONFLICT_OUTSIDE_SCHEDULE: 'Этот слот не предлагается расписанием',
    CONFLICT_INVALID_DURATION: 'Длительность слота не совпадает с длительностью события',
    CONFLICT_LOCKED: 'Слот сейчас бронируется другим клиентом, попробуйте ещё раз',
}


@dataclass(frozen=True)
class SlotConflict:
    """Слот больше недоступен. Это обычный результат, а не исключение"""
    code: str
    message: str

    @classmethod
    def of(cls, code):
        return cls(code=code, message=CONFLICT_MESSAGES[code])


@dataclass(frozen=True)
class ReservationDecision:
    state: str
    conflict: Optional[SlotConflict] = None
    remaining_seats: int = 0

    @property
    def allowed(self) -> bool:
        return self.state == CONFIRMED

    @classmethod
    def allow(cls, seats):
        return cls(state=CONFIRMED, remaining_seats=seats)

    @classmethod
    def deny(cls, code):
        return cls(state=REJECTED, conflict=SlotConflict.of(code))


def check_slot(event_type: EventTypeConfig, slot: Window,
               blocked: Iterable[BlockedWindow], bookings: Iterable[BookingWindow],
               busy: Optional[Iterable[Window]] = None, now: Optional[datetime] = None,
               attendees: int = 1,
               one_off_windows: Iterable[OneOffWindow] = ()) -> ReservationDecision:
    """
    Переводит заявку из состояния PROPOSED в CONFIRMED или REJECTED.

    Порядок проверок: прошедшее время, длительность, блокировки,
    вместимость с учётом буферов, внешний календарь.
    """
    if now is not None and slot.start <= now:
        return ReservationDecision.deny(CONFLICT_PAST)

    if slot.end - slot.start != event_type.duration:
        return ReservationDecision.deny(CONFLICT_INVALID_DURATION)

    if is_blocked(slot, event_type, applicable_blocks(blocked, event_type.id)):
        return ReservationDecision.deny(CONFLICT_BLOCKED)

    capacity = slot_capacity(slot, event_type.capacity, one_off_windows)
    seats = remaining_seats(capacity, overlapping_bookings(slot, event_type, bookings))
    if seats < attendees:
        if capacity == 1:
            return ReservationDecision.deny(CONFLICT_BOOKED)
        return ReservationDecision.deny(CONFLICT_FULL)

    if busy and any(overlaps(slot, window) for window in busy):
        return ReservationDecision.deny(CONFLICT_CALENDAR_BUSY)

    return ReservationDecision.allow(seats - attendees)
