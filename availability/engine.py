"""
Конвейер расчёта доступности без ввода-вывода.

правила -> кандидаты -> блокировки -> вместимость -> внешний календарь -> прошедшие слоты
"""
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from .busy_time import apply_busy_intervals
from .candidates import generate_candidates, one_off_touching
from .capacity import resolve_capacity
from .domain import AvailabilityContext, ComputedSlot, Window
from .exclusions import apply_exclusions
from .intervals import merge
from .recurrence import expand_rules, get_zone


def compute_slots(context: AvailabilityContext, range_start: datetime, range_end: datetime,
                  busy: Optional[List[Window]] = None,
                  now: Optional[datetime] = None) -> List[ComputedSlot]:
    """
    Рассчитывает упорядоченный список слотов для типа события.

    :param busy: занятые интервалы внешнего календаря или None, если он не используется
    :param now: слоты, начинающиеся не позже now, отбрасываются
    """
    event_type = context.event_type

    candidates = candidate_windows(context, range_start, range_end)
    survivors = apply_exclusions(candidates, event_type, context.blocked, context.bookings)
    slots = resolve_capacity(survivors, event_type.capacity, context.one_off_windows)

    if busy:
        slots = apply_busy_intervals(slots, busy)

    if now is not None:
        slots = [slot for slot in slots if slot.start > now]

    return sorted(slots, key=lambda slot: slot.start)


def candidate_windows(context: AvailabilityContext, range_start: datetime,
                      range_end: datetime) -> List[Window]:
    """Слоты, которые предлагает расписание, без учёта блокировок и бронирований"""
    windows = schedule_windows(context, range_start, range_end)
    return generate_candidates(windows, context.event_type.duration, range_start, range_end)


def schedule_windows(context: AvailabilityContext, range_start: datetime,
                     range_end: datetime) -> List[Window]:
    """
    Объединённые окна расписания, пересекающие диапазон, целиком.

    Сетка слотов отсчитывается от начала объединённого окна, поэтому окно,
    начавшееся до диапазона или продолжающееся после него, собирается
    полностью: правила разворачиваются и разовые окна подтягиваются, пока
    границы не перестанут расширяться. Так сетка зависит только от данных,
    а не от границ запроса.
    """
    event_type = context.event_type
    span_start, span_end = range_start, range_end
    while True:
        windows = expand_rules(context.rules, span_start, span_end, event_type.timezone)
        windows.extend(one_off_touching(context.one_off_windows, span_start, span_end))
        covering = [
            window for window in merge(windows)
            if window.start < range_end and window.end > range_start
        ]

        new_start = min([span_start] + [window.start for window in covering])
        new_end = max([span_end] + [window.end for window in covering])
        if (new_start, new_end) == (span_start, span_end):
            return covering
        span_start, span_end = new_start, new_end


def group_slots_by_date(slots: List[ComputedSlot], tz_name: str) -> Dict:
    """Группирует слоты по локальной дате начала"""
    zone = get_zone(tz_name)
    grouped = OrderedDict()
    for slot in slots:
        grouped.setdefault(slot.start.astimezone(zone).date(), []).append(slot)
    return grouped


def available_dates(slots: List[ComputedSlot], tz_name: str) -> list:
    """Локальные даты, в которых есть хотя бы один доступный слот"""
    zone = get_zone(tz_name)
    return sorted({slot.start.astimezone(zone).date() for slot in slots if slot.available})


def next_available_slot(slots: List[ComputedSlot], now: Optional[datetime] = None) -> Optional[ComputedSlot]:
    for slot in sorted(slots, key=lambda s: s.start):
        if slot.available and (now is None or slot.start > now):
            return slot
    return None
