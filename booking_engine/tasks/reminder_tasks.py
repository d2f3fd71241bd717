# booking_engine/tasks/reminder_tasks.py
from booking_engine.config.celery_config import celery_app
from booking_engine.config.database import SessionLocal
from booking_engine.core.exceptions import TransientError
from booking_engine.services.notification.notification_service import CeleryNotificationPublisher
from booking_engine.services.reminder.reminder_service import ReminderService
import logging

logger = logging.getLogger(__name__)


def _run_reminders(task, horizon: str):
    db = SessionLocal()
    try:
        return ReminderService.run(db, horizon, CeleryNotificationPublisher(celery_app))
    except TransientError as exc:
        logger.warning(f"{horizon} reminder run hit a transient storage error, retrying: {exc}")
        raise task.retry(exc=exc, countdown=60 * (task.request.retries + 1))
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def send_24h_reminders(self):
    """Remind customers of confirmed bookings starting in about 24 hours"""
    return _run_reminders(self, "24h")


@celery_app.task(bind=True, max_retries=3)
def send_1h_reminders(self):
    """Remind customers of confirmed bookings starting in about an hour"""
    return _run_reminders(self, "1h")
