"""
Celery application configuration for background expense sync.
"""
from celery import Celery
from celery.schedules import crontab

from spendsync.config import settings

# Initialize Celery app
celery_app = Celery(
    'spendsync',
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=['spendsync.celery.celery_tasks']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,
    task_soft_time_limit=3300,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
    broker_connection_retry_on_startup=True,
    result_expires=3600,
)

celery_app.conf.beat_schedule = {
    'incremental-expense-sync': {
        'task': 'spendsync.celery.celery_tasks.schedule_incremental_sync',
        'schedule': crontab(minute='*/30'),
    },
    'cleanup-stale-sync-jobs': {
        'task': 'spendsync.celery.celery_tasks.cleanup_stale_sync_jobs',
        'schedule': crontab(minute=15),
    },
}

celery_app.conf.task_routes = {
    'spendsync.celery.celery_tasks.sync_user_expenses': {'queue': 'email_processing'},
    'spendsync.celery.celery_tasks.schedule_incremental_sync': {'queue': 'scheduling'},
    'spendsync.celery.celery_tasks.cleanup_stale_sync_jobs': {'queue': 'scheduling'},
}
