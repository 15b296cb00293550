"""
Celery приложение сервиса бронирования: фоновое завершение прошедших
бронирований и инвалидация кеша доступности.
"""

import logging
import os

from celery import Celery
from celery.signals import task_failure

logger = logging.getLogger(__name__)

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "booking_project.settings.base")

app = Celery("booking_project")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(["core"])

app.conf.beat_schedule = {
    "complete-finished-bookings": {
        "task": "core.tasks.complete_finished_bookings",
        "schedule": 900.0,  # каждые 15 минут
    },
}


@task_failure.connect
def task_failure_handler(sender=None, exception=None, **kwargs):
    logger.error(f"Задача {sender.name} завершилась ошибкой: {exception}")
