"""Celery application configuration.

This module sets up the Celery app with:
- Redis as broker and result backend
- Task routing to specialized queues
- Serialization and timezone settings
- Beat schedule for the durable resume sweep and stale-execution recovery
"""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "commerce_automation",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

# Configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task routing: ingestion, scheduling and campaigns never starve each other
    task_routes={
        "worker.tasks.events.*": {"queue": "events"},
        "worker.tasks.scheduler.*": {"queue": "scheduler"},
        "worker.tasks.campaigns.*": {"queue": "campaigns"},
        "worker.tasks.*": {"queue": "default"},
    },

    # Default queue
    task_default_queue="default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Task execution limits
    task_soft_time_limit=300,   # 5 min soft limit (raises SoftTimeLimitExceeded)
    task_time_limit=600,        # 10 min hard limit (kills the task)
    task_acks_late=True,        # Acknowledge after execution (safer)
    worker_prefetch_multiplier=1,  # One task at a time per worker process

    # Retry
    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    # Beat schedule for periodic tasks
    beat_schedule={
        "resume-due-executions": {
            "task": "worker.tasks.scheduler.resume_due_executions",
            "schedule": float(settings.RESUME_POLL_INTERVAL_SECONDS),
            "options": {"queue": "scheduler"},
        },
        "recover-stale-executions": {
            "task": "worker.tasks.scheduler.recover_stale_executions",
            "schedule": crontab(minute="*/5"),  # Every 5 minutes
            "options": {"queue": "scheduler"},
        },
    },

    # Auto-discover task modules
    include=[
        "worker.tasks.events",
        "worker.tasks.scheduler",
        "worker.tasks.campaigns",
    ],
)
