"""Celery application for the duplicate detection workers.

Run a worker with:
    celery -A workers.celery_app worker --loglevel=INFO
and the scheduler with:
    celery -A workers.celery_app beat
"""

from celery import Celery
from celery.schedules import crontab

from config import get_settings
from observability.logging_config import configure_logging

_settings = get_settings()

configure_logging(level=_settings.LOG_LEVEL, json_format=_settings.LOG_JSON)

celery_app = Celery(
    "dupeguard",
    broker=_settings.CELERY_BROKER_URL,
    backend=_settings.CELERY_RESULT_BACKEND,
    include=["workers.duplicate_worker", "workers.maintenance_worker"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
)

celery_app.conf.beat_schedule = {
    "webhook-delivery-cleanup-daily": {
        "task": "duplicates.cleanup_webhook_deliveries",
        "schedule": crontab(hour=3, minute=0),  # 03:00 UTC
        "options": {
            "expires": 3600,
        },
    },
}
