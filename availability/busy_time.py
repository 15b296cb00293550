"""
Внешний календарь: занятые интервалы владельца календаря.

Провайдер выбирается настройкой BUSY_TIME_PROVIDER. Любая ошибка провайдера
превращается в IntegrationUnavailable, а расчёт доступности продолжается
только по внутренним данным.
"""
import logging
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, List, Optional

import requests
from django.conf import settings
from django.core.cache import cache
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from .domain import ComputedSlot, Window
from .exceptions import IntegrationUnavailable
from .intervals import overlaps

logger = logging.getLogger(__name__)

GRAPH_API_BASE = 'https://graph.microsoft.com/v1.0'
GRAPH_TOKEN_ENDPOINT = 'https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token'

# Токен обновляется за 5 минут до истечения
TOKEN_REFRESH_MARGIN = 5 * 60
TOKEN_CACHE_KEY = 'busy_time:graph_token'


class BusyTimeProvider:
    """
    Контракт внешнего календаря: get_busy_intervals(owner, start, end).
    Реализации бросают IntegrationUnavailable при любой ошибке провайдера.
    """

    def get_busy_intervals(self, owner: str, range_start: datetime,
                           range_end: datetime) -> List[Window]:
        raise NotImplementedError

    @property
    def enabled(self) -> bool:
        return True


class NullBusyTimeProvider(BusyTimeProvider):
    """Провайдер по умолчанию: внешнего календаря нет"""

    def get_busy_intervals(self, owner, range_start, range_end):
        return []

    @property
    def enabled(self):
        return False


class MicrosoftGraphBusyTimeProvider(BusyTimeProvider):
    """
    Занятость календаря Outlook через Microsoft Graph (getSchedule).
    Авторизация - client credentials, токен хранится в кеше Django.
    """

    def __init__(self, client_id=None, client_secret=None, tenant_id=None,
                 default_owner=None, secondary_owner=None, timeout=None):
        self.client_id = client_id or settings.MS_GRAPH_CLIENT_ID
        self.client_secret = client_secret or settings.MS_GRAPH_CLIENT_SECRET
        self.tenant_id = tenant_id or settings.MS_GRAPH_TENANT_ID
        self.default_owner = default_owner or settings.MS_GRAPH_USER_EMAIL
        self.secondary_owner = secondary_owner or settings.MS_GRAPH_USER_EMAIL_SECONDARY
        self.timeout = timeout or settings.BUSY_TIME_TIMEOUT_SECONDS

    @property
    def enabled(self):
        return bool(self.client_id and self.client_secret)

    def get_busy_intervals(self, owner, range_start, range_end):
        if not self.enabled:
            raise IntegrationUnavailable('Учётные данные Microsoft Graph не настроены')

        primary = owner or self.default_owner
        if not primary:
            raise IntegrationUnavailable('Не задан владелец календаря')

        schedules = [primary]
        # Второй календарь проверяется только для владельца по умолчанию
        if self.secondary_owner and not owner:
            schedules.append(self.secondary_owner)

        payload = {
            'schedules': schedules,
            'startTime': {'dateTime': _graph_datetime(range_start), 'timeZone': 'UTC'},
            'endTime': {'dateTime': _graph_datetime(range_end), 'timeZone': 'UTC'},
            'availabilityViewInterval': 15,
        }
        headers = {
            'Authorization': f"Bearer {self._get_access_token()}",
            'Content-Type': 'application/json',
            'Prefer': 'outlook.timezone="UTC"',
        }

        try:
            response = requests.post(
                f"{GRAPH_API_BASE}/users/{primary}/calendar/getSchedule",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IntegrationUnavailable(f"Ошибка запроса к Microsoft Graph: {e}") from e

        if response.status_code != 200:
            raise IntegrationUnavailable(
                f"Microsoft Graph вернул {response.status_code}: {response.text[:200]}"
            )

        try:
            return parse_schedule_response(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise IntegrationUnavailable(f"Некорректный ответ Microsoft Graph: {e}") from e

    def _get_access_token(self):
        token = cache.get(TOKEN_CACHE_KEY)
        if token:
            return token

        try:
            response = requests.post(
                GRAPH_TOKEN_ENDPOINT.format(tenant=self.tenant_id),
                data={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'scope': 'https://graph.microsoft.com/.default',
                    'grant_type': 'client_credentials',
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IntegrationUnavailable(f"Не удалось получить токен Microsoft Graph: {e}") from e

        if response.status_code != 200:
            raise IntegrationUnavailable(
                f"Не удалось получить токен Microsoft Graph: {response.text[:200]}"
            )

        data = response.json()
        token = data.get('access_token')
        if not token:
            raise IntegrationUnavailable('В ответе Microsoft Graph нет access_token')

        ttl = max(int(data.get('expires_in', 3600)) - TOKEN_REFRESH_MARGIN, 1)
        cache.set(TOKEN_CACHE_KEY, token, timeout=ttl)
        logger.info('Токен Microsoft Graph обновлён')
        return token


def parse_schedule_response(data) -> List[Window]:
    """Все элементы расписания со статусом, отличным от free, считаются занятыми"""
    busy = []
    for schedule in data['value']:
        for item in schedule.get('scheduleItems', []):
            if item.get('status') == 'free':
                continue
            start = _parse_graph_datetime(item['start']['dateTime'])
            end = _parse_graph_datetime(item['end']['dateTime'])
            if end > start:
                busy.append(Window(start, end))
    return busy


def get_busy_time_provider() -> BusyTimeProvider:
    provider_class = import_string(settings.BUSY_TIME_PROVIDER)
    return provider_class()


def fetch_busy_intervals(provider: BusyTimeProvider, owner: str, range_start: datetime,
                         range_end: datetime) -> Optional[List[Window]]:
    """
    Запрашивает занятость у провайдера.
    Возвращает None, если провайдер отключён или недоступен.
    """
    if not provider.enabled:
        return None
    try:
        return provider.get_busy_intervals(owner, range_start, range_end)
    except IntegrationUnavailable as e:
        logger.warning(f"Внешний календарь недоступен, используем только внутренние данные: {e}")
        return None


def apply_busy_intervals(slots: Iterable[ComputedSlot], busy: Iterable[Window]) -> List[ComputedSlot]:
    """Слоты, пересекающие занятое время, помечаются недоступными; места не пересчитываются"""
    busy = list(busy)
    result = []
    for slot in slots:
        if slot.available and any(overlaps(slot.window, window) for window in busy):
            slot = ComputedSlot(slot.start, slot.end, False, slot.remaining_seats)
        result.append(slot)
    return result


def _graph_datetime(value: datetime) -> str:
    return value.astimezone(dt_timezone.utc).replace(tzinfo=None).isoformat()


def _parse_graph_datetime(value: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Некорректная дата: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed.astimezone(dt_timezone.utc)
