"""
Настройки для тестов.
"""

from .base import *  # noqa: F401,F403

SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "booking-tests",
    }
}

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Redis в тестах не нужен: сериализация идёт через блокировку строки в БД
BOOKING_USE_REDIS_LOCK = False
BUSY_TIME_PROVIDER = "availability.busy_time.NullBusyTimeProvider"

TIME_ZONE = "Europe/Amsterdam"
BOOKING_TIMEZONE = "Europe/Amsterdam"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": True,
    "handlers": {
        "null": {"class": "logging.NullHandler"},
    },
    "loggers": {
        "": {"handlers": ["null"], "level": "CRITICAL"},
    },
}
