"""
Celery Application Configuration
Periodic maintenance with Redis as broker
"""

from celery import Celery

from app.core.simple_config import settings

celery_app = Celery(
    "bizdesk",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_soft_time_limit=300,
    task_time_limit=600,
    beat_schedule={
        "invitation-code-expire-sweep": {
            "task": "invitation_codes.expire_sweep",
            "schedule": float(settings.INVITATION_SWEEP_INTERVAL_SECONDS),
        },
    },
)
