"""
Развёртывание еженедельных правил доступности в конкретные окна.
"""
import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Iterable, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .domain import RecurringRule, Window
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Неизвестный часовой пояс: {name}") from e


def local_day_of_week(day) -> int:
    """День недели в нумерации правил: 0 = воскресенье, 6 = суббота"""
    return day.isoweekday() % 7


def to_utc(local_day, local_time, zone: ZoneInfo) -> datetime:
    """
    Переводит локальные дату и время в UTC по правилам часового пояса.
    Переходы на летнее время учитываются через zoneinfo, а не фиксированным смещением.
    """
    return datetime.combine(local_day, local_time, tzinfo=zone).astimezone(dt_timezone.utc)


def expand_rules(rules: Iterable[RecurringRule], range_start: datetime,
                 range_end: datetime, tz_name: str) -> List[Window]:
    """
    Для каждого локального дня диапазона, чей день недели совпадает
    с активным правилом, возвращает окно этого дня в UTC.
    Несколько правил на один день дают несколько окон.
    """
    zone = get_zone(tz_name)
    active_rules = [rule for rule in rules if rule.is_active]
    if not active_rules:
        return []

    first_day = range_start.astimezone(zone).date()
    last_day = range_end.astimezone(zone).date()

    windows = []
    current_day = first_day
    while current_day <= last_day:
        weekday = local_day_of_week(current_day)
        for rule in active_rules:
            if rule.day_of_week != weekday:
                continue
            windows.append(Window(
                to_utc(current_day, rule.start_time, zone),
                to_utc(current_day, rule.end_time, zone),
            ))
        current_day += timedelta(days=1)

    logger.debug(f"Развёрнуто окон из правил: {len(windows)} ({first_day} - {last_day}, {tz_name})")
    return windows
