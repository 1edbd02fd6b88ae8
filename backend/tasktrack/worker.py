"""Celery worker configuration."""

from celery import Celery
from celery.schedules import crontab

from tasktrack.config import get_settings
from tasktrack.logging import configure_logging

settings = get_settings()
configure_logging(settings)

# Create Celery app
celery_app = Celery(
    "tasktrack",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    worker_hijack_root_logger=False,
)

celery_app.conf.beat_schedule = {
    "process-recurring-tasks-hourly": {
        "task": "tasktrack.tasks.process_recurring_tasks",
        "schedule": crontab(minute=settings.recurrence_sweep_cron_minute),
    },
}

# Auto-discover tasks from tasktrack.tasks module
celery_app.autodiscover_tasks(["tasktrack"])
