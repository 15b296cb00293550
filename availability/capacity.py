"""
Учёт вместимости слотов.
"""
from typing import Iterable, List, Tuple

from .domain import BookingWindow, ComputedSlot, OneOffWindow, Window
from .intervals import contains


def attendee_count(bookings: Iterable[BookingWindow]) -> int:
    return sum(booking.attendee_count for booking in bookings if booking.is_active)


def remaining_seats(capacity: int, bookings: Iterable[BookingWindow]) -> int:
    """Оставшиеся места, никогда не меньше нуля"""
    return max(0, capacity - attendee_count(bookings))


def slot_capacity(slot: Window, default: int, one_off_windows: Iterable[OneOffWindow] = ()) -> int:
    """
    Вместимость конкретного слота. Активное разовое окно со своей вместимостью,
    целиком содержащее слот, переопределяет вместимость типа события.
    Из нескольких таких окон берётся наибольшая вместимость.
    """
    overrides = [
        item.max_attendees for item in one_off_windows
        if item.is_active and item.max_attendees is not None and contains(item.window, slot)
    ]
    return max(overrides) if overrides else default


def resolve_capacity(slots: Iterable[Tuple[Window, List[BookingWindow]]], capacity: int,
                     one_off_windows: Iterable[OneOffWindow] = ()) -> List[ComputedSlot]:
    """
    Для вместимости 1 любое пересечение делает слот недоступным,
    для групповых событий считаются занятые места.
    """
    one_off_windows = list(one_off_windows)
    resolved = []
    for slot, bookings in slots:
        seats = remaining_seats(slot_capacity(slot, capacity, one_off_windows), bookings)
        resolved.append(ComputedSlot(
            start=slot.start,
            end=slot.end,
            available=seats > 0,
            remaining_seats=seats,
        ))
    return resolved
