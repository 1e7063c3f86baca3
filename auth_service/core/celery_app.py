"""
Celery application configuration.

Only maintenance jobs run on Celery; sign-in codes are delivered inline so
the request can report delivery failures.
"""

from celery import Celery
from celery.schedules import crontab
from auth_service.core.config import settings

celery_app = Celery(
    "auth_service_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,

    # Result backend
    result_expires=3600,

    # Worker behavior
    worker_prefetch_multiplier=1,

    beat_schedule={
        "purge-expired-auth-rows": {
            "task": "purge_expired_auth_rows",
            "schedule": crontab(minute=15),  # Hourly
        },
    },
)

celery_app.autodiscover_tasks(["auth_service"])
