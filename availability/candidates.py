"""
Генерация кандидатов в слоты фиксированной длины.
"""
from datetime import datetime, timedelta
from typing import Iterable, List

from .domain import OneOffWindow, Window
from .intervals import merge


def one_off_touching(one_off_windows: Iterable[OneOffWindow], span_start: datetime,
                     span_end: datetime) -> List[Window]:
    """Активные разовые окна, пересекающие [span_start, span_end) или касающиеся его"""
    return [
        item.window for item in one_off_windows
        if item.is_active and item.start <= span_end and item.end >= span_start
    ]


def split_window(window: Window, duration: timedelta) -> List[Window]:
    """
    Режет окно на последовательные слоты длиной duration от начала окна.
    Остаток короче duration отбрасывается, неполных слотов не бывает.
    """
    slots = []
    current = window.start
    while current + duration <= window.end:
        slots.append(Window(current, current + duration))
        current += duration
    return slots


def generate_candidates(windows: Iterable[Window], duration: timedelta,
                        range_start: datetime, range_end: datetime) -> List[Window]:
    """
    Объединяет все окна и нарезает их на слоты.
    В результат попадают слоты с началом внутри диапазона, отсортированные
    и без повторов по началу.
    """
    seen = set()
    candidates = []
    for window in merge(windows):
        for slot in split_window(window, duration):
            if not range_start <= slot.start < range_end:
                continue
            if slot.start in seen:
                continue
            seen.add(slot.start)
            candidates.append(slot)

    candidates.sort()
    return candidates
