"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "payssd",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.billing",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Juba",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Stale pending payments every 30 minutes
    "expire-stale-payments": {
        "task": "app.workers.billing.expire_stale_payments",
        "schedule": crontab(minute="*/30"),
    },
    # Renewal invoices daily at 06:00
    "generate-renewals": {
        "task": "app.workers.billing.generate_renewals",
        "schedule": crontab(hour=6, minute=0),
    },
    # Lapsed subscriptions daily at 00:15
    "process-subscription-expiry": {
        "task": "app.workers.billing.process_subscription_expiry",
        "schedule": crontab(hour=0, minute=15),
    },
}
