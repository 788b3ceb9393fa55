"""Celery application configuration with priority queues and Beat schedule."""
from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging, worker_process_init

from crosspost.config import settings

celery_app = Celery(
    "crosspost",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "crosspost.tasks.publishing_tasks",
        "crosspost.tasks.data_collection_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_routes={
        "crosspost.tasks.publishing_tasks.*": {"queue": "critical"},
        "crosspost.tasks.data_collection_tasks.*": {"queue": "medium"},
    },
    task_default_retry_delay=60,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    "scan-scheduled-posts": {
        "task": "crosspost.tasks.publishing_tasks.scan_scheduled_posts",
        "schedule": 60.0,
    },
    "collect-post-metrics": {
        "task": "crosspost.tasks.data_collection_tasks.schedule_post_metrics",
        "schedule": float(settings.METRICS_FETCH_INTERVAL),
    },
    "collect-account-analytics": {
        "task": "crosspost.tasks.data_collection_tasks.schedule_account_analytics",
        "schedule": crontab(hour=2, minute=0),
    },
    "refresh-expiring-tokens": {
        "task": "crosspost.tasks.data_collection_tasks.refresh_expiring_tokens",
        "schedule": 3600.0,
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    from crosspost.logging_config import configure_logging

    configure_logging(settings)


@worker_process_init.connect
def _init_worker_sentry(**kwargs):
    from crosspost.logging_config import init_sentry

    init_sentry(settings)
