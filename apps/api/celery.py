# apps/api/celery.py
"""
Celery 앱 — 만료 attempt sweep (beat) 실행용.

DJANGO_SETTINGS_MODULE은 외부에서 주입 (워커/beat: apps.api.config.settings.worker)
"""
import logging

from celery import Celery
from celery.signals import worker_ready

logger = logging.getLogger(__name__)

app = Celery("assessment")

app.config_from_object(
    "django.conf:settings",
    namespace="CELERY",
)

app.autodiscover_tasks(["apps.domains.attempts"])


@worker_ready.connect
def log_beat_schedule(sender=None, **kwargs):
    for name, entry in (app.conf.beat_schedule or {}).items():
        logger.info(
            "CELERY_BEAT_ENTRY | name=%s task=%s every=%ss",
            name, entry.get("task"), entry.get("schedule"),
        )
