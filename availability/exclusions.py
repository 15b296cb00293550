"""
Исключение заблокированного времени и сбор пересечений с бронированиями.
"""
from typing import Iterable, List, Tuple

from .domain import BlockedWindow, BookingWindow, EventTypeConfig, Window
from .intervals import overlaps, pad


def padded(window: Window, event_type: EventTypeConfig) -> Window:
    return pad(window, event_type.buffer_before, event_type.buffer_after)


def applicable_blocks(blocked: Iterable[BlockedWindow], event_type_id: str) -> List[Window]:
    """Глобальные блокировки и блокировки данного типа события"""
    return [item.window for item in blocked if item.applies_to(event_type_id)]


def is_blocked(slot: Window, event_type: EventTypeConfig, blocks: Iterable[Window]) -> bool:
    span = padded(slot, event_type)
    return any(overlaps(span, block) for block in blocks)


def overlapping_bookings(slot: Window, event_type: EventTypeConfig,
                         bookings: Iterable[BookingWindow]) -> List[BookingWindow]:
    """
    Неотменённые бронирования, чей интервал с буферами пересекает
    интервал слота с буферами.
    """
    span = padded(slot, event_type)
    return [
        booking for booking in bookings
        if booking.is_active and overlaps(span, padded(booking.window, event_type))
    ]


def apply_exclusions(candidates: Iterable[Window], event_type: EventTypeConfig,
                     blocked: Iterable[BlockedWindow],
                     bookings: Iterable[BookingWindow]) -> List[Tuple[Window, List[BookingWindow]]]:
    """
    Слот, попавший буферами на блокировку, удаляется целиком.
    Пересечения с бронированиями не удаляют слот: они передаются дальше
    для учёта вместимости.
    """
    blocks = applicable_blocks(blocked, event_type.id)
    bookings = list(bookings)

    survivors = []
    for slot in candidates:
        if is_blocked(slot, event_type, blocks):
            continue
        survivors.append((slot, overlapping_bookings(slot, event_type, bookings)))
    return survivors
