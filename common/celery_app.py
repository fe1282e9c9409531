"""Celery application for scheduled database maintenance."""

from celery import Celery
from celery.schedules import crontab
from common.config import get_settings

settings = get_settings()

celery_app = Celery(
    "aih_audit",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["services.maintenance.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Sao_Paulo",
    enable_utc=True,
    task_track_started=True,
    # one maintenance job at a time against the single database file
    worker_concurrency=1,
)

celery_app.conf.beat_schedule = {
    "backup-every-8-hours": {
        "task": "create_backup",
        "schedule": 8 * 60 * 60,
    },
    "maintenance-every-3-days": {
        "task": "run_maintenance",
        "schedule": 3 * 24 * 60 * 60,
    },
    "wal-checkpoint-daily": {
        "task": "wal_checkpoint",
        "schedule": crontab(hour=3, minute=0),
    },
}
