# безопасный Redis-lock для бронирования слотов.
from contextlib import contextmanager
import logging
# Импорт модуля uuid. Нужен для генерации уникального токена для каждого лок-захвата.
import uuid

from django.conf import settings

# единый доступ к Redis.
from .redis_client import redis_client

logger = logging.getLogger(__name__)

# Lua-скрипт для атомарного сравнения и удаления:
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
"""


def booking_lock_key(event_type_id):
    # Один лок на тип события: пересечение слотов с буферами не сводится к одному ключу слота
    return f"booking-lock:{event_type_id}"


# Функция ставит лок атомарно и возвращает уникальный токен владельца. TTL защищает от вечных локов.
def acquire_lock(key: str, ttl: int):
    token = str(uuid.uuid4())
    acquired = redis_client.set(key, token, nx=True, ex=ttl)
    # Клиент использует token как подтверждение владения локом.
    return token if acquired else None


# Функция удаляет лок только если токен совпадает. Удаление выполняется атомарно через Lua, чтобы избежать гонок.
def release_lock(key: str, token: str):
    return redis_client.eval(RELEASE_SCRIPT, 1, key, token)


@contextmanager
def booking_lock(event_type_id):
    """
    Захватывает лок бронирования типа события.
    Отдаёт True, если лок получен или отключён настройкой BOOKING_USE_REDIS_LOCK.
    """
    if not settings.BOOKING_USE_REDIS_LOCK:
        yield True
        return

    key = booking_lock_key(event_type_id)
    token = acquire_lock(key, settings.BOOKING_LOCK_TTL)
    if token is None:
        logger.info(f"Лок {key} занят другим запросом")
        yield False
        return

    try:
        yield True
    finally:
        release_lock(key, token)
