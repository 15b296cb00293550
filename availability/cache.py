from django.conf import settings
from django.core.cache import cache
from datetime import datetime, timezone as dt_timezone
import logging

logger = logging.getLogger(__name__)


class AvailabilityCache:
    """
    Класс для работы с кешем рассчитанной доступности типов событий
    """

    # Префикс для ключей кеша доступности
    AVAILABILITY_KEY_PREFIX = 'avail'

    # Префикс для ключей версии: смена версии делает старые ключи недостижимыми
    VERSION_KEY_PREFIX = 'avail_version'

    @classmethod
    def get_ttl(cls):
        return settings.AVAILABILITY_CACHE_TTL

    @classmethod
    def get_version_key(cls, event_type_id):
        return f"{cls.VERSION_KEY_PREFIX}:{event_type_id}"

    @classmethod
    def get_version(cls, event_type_id):
        """
        Текущая версия кеша типа события
        :param event_type_id: UUID типа события
        :return: int
        """
        key = cls.get_version_key(event_type_id)
        version = cache.get(key)
        if version is None:
            # add не перезапишет версию, выставленную параллельным запросом
            cache.add(key, 1, timeout=None)
            version = cache.get(key, 1)
        return version

    @classmethod
    def get_availability_key(cls, event_type_id, range_start, range_end, include_external):
        """
        Генерирует ключ для кеша доступности типа события на диапазон
        :param event_type_id: UUID типа события
        :param range_start: начало диапазона (datetime)
        :param range_end: конец диапазона (datetime)
        :param include_external: учитывался ли внешний календарь
        :return: строковый ключ
        """
        version = cls.get_version(event_type_id)
        return (
            f"{cls.AVAILABILITY_KEY_PREFIX}:{event_type_id}:v{version}:"
            f"{_stamp(range_start)}:{_stamp(range_end)}:{int(bool(include_external))}"
        )

    @classmethod
    def set_availability(cls, event_type_id, range_start, range_end, include_external, slots, ttl=None):
        """
        Сохраняет рассчитанные слоты в кеш
        """
        if ttl is None:
            ttl = cls.get_ttl()

        try:
            key = cls.get_availability_key(event_type_id, range_start, range_end, include_external)
            cache.set(key, slots, timeout=ttl)
            logger.debug(f"Кеш доступности сохранен: {key}, TTL: {ttl}с")
        except Exception as e:
            logger.error(f"Ошибка сохранения кеша доступности для {event_type_id}: {str(e)}")

    @classmethod
    def get_availability(cls, event_type_id, range_start, range_end, include_external):
        """
        Получает слоты из кеша
        :return: список слотов или None
        """
        try:
            key = cls.get_availability_key(event_type_id, range_start, range_end, include_external)
            data = cache.get(key)
            if data is not None:
                logger.debug(f"Кеш доступности получен: {key}")
            return data
        except Exception as e:
            logger.error(f"Ошибка получения кеша доступности для {event_type_id}: {str(e)}")
            return None

    @classmethod
    def invalidate_event_type(cls, event_type_id):
        """
        Инвалидирует весь кеш доступности типа события
        """
        key = cls.get_version_key(event_type_id)
        try:
            try:
                cache.incr(key)
            except ValueError:
                # Версии ещё нет: любой новый ключ будет отличаться от старых
                cache.set(key, 2, timeout=None)
            logger.debug(f"Кеш доступности инвалидирован для типа события: {event_type_id}")
        except Exception as e:
            logger.error(f"Ошибка инвалидации кеша для типа события {event_type_id}: {str(e)}")

    @classmethod
    def invalidate_multiple_event_types(cls, event_type_ids):
        for event_type_id in event_type_ids:
            cls.invalidate_event_type(event_type_id)


def _stamp(value):
    if isinstance(value, datetime):
        return value.astimezone(dt_timezone.utc).isoformat()
    return str(value)
