# booking_engine/config/celery_config.py
"""Celery configuration, task routing and the reminder beat schedule"""
from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from booking_engine.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "booking_engine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "booking_engine.tasks.reminder_tasks.*": {"queue": "reminders"},
            settings.NOTIFICATION_TASK_NAME: {"queue": settings.NOTIFICATION_QUEUE},
        },

        # Queue definitions
        task_queues=(
            Queue("reminders", routing_key="reminders"),
            Queue(settings.NOTIFICATION_QUEUE, routing_key=settings.NOTIFICATION_QUEUE),
        ),

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Retry settings
        task_retry_max_retries=3,
        task_retry_delay=60,

        broker_connection_retry_on_startup=True,

        # Reminder sweeps; each horizon window is at least as wide as its period.
        # Overlapping runs are safe because claims are atomic
        beat_schedule={
            "send-24h-reminders": {
                "task": "booking_engine.tasks.reminder_tasks.send_24h_reminders",
                "schedule": crontab(minute=0),
            },
            "send-1h-reminders": {
                "task": "booking_engine.tasks.reminder_tasks.send_1h_reminders",
                "schedule": crontab(minute="*/15"),
            },
        },
    )

    celery_app.autodiscover_tasks(["booking_engine.tasks"], related_name="reminder_tasks")

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
