# booking_engine/services/notification/notification_service.py
"""
Booking notification events.

The engine only produces structured events; rendering and delivery belong
to the notification worker that consumes NOTIFICATION_TASK_NAME.
"""
import logging
from typing import Optional

from booking_engine.config.settings import get_settings
from booking_engine.models.booking import Booking
from booking_engine.schemas.notification_events import (
    CustomerContact, NotificationEvent, NotificationEventType
)

logger = logging.getLogger(__name__)

settings = get_settings()


def build_booking_event(
        booking: Booking,
        event_type: NotificationEventType,
        previous_booking_id: Optional[str] = None
) -> NotificationEvent:
    """Snapshot a booking into a notification event"""
    customer = booking.customer
    service = booking.service
    employee = booking.employee
    business = booking.business

    return NotificationEvent(
        event_type=event_type,
        booking_id=str(booking.id),
        business_id=str(booking.business_id),
        customer=CustomerContact(**customer.contact()) if customer else CustomerContact(),
        service_name=service.name if service else None,
        service_duration=service.duration if service else None,
        employee_name=employee.name if employee else None,
        start_time=booking.start_time,
        business_timezone=business.timezone if business else settings.DEFAULT_TIMEZONE,
        previous_booking_id=previous_booking_id,
    )


class NotificationPublisher:
    """Hands events to the delivery collaborator"""

    def publish(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class CeleryNotificationPublisher(NotificationPublisher):
    """Queues events for the notification worker via Celery"""

    def __init__(self, celery_app=None):
        self._celery_app = celery_app

    @property
    def celery_app(self):
        if self._celery_app is None:
            from booking_engine.config.celery_config import celery_app
            self._celery_app = celery_app
        return self._celery_app

    def publish(self, event: NotificationEvent) -> None:
        self.celery_app.send_task(
            settings.NOTIFICATION_TASK_NAME,
            kwargs={"event": event.model_dump(mode="json")},
            queue=settings.NOTIFICATION_QUEUE,
        )
        logger.info(
            f"Queued {event.event_type.value} notification for booking {event.booking_id}",
            extra={"business_id": event.business_id}
        )


def get_notification_publisher() -> NotificationPublisher:
    """Default publisher used when a caller does not inject one"""
    return CeleryNotificationPublisher()


def publish_safely(publisher: NotificationPublisher, event: NotificationEvent) -> bool:
    """
    Publish after commit. The booking is already durable, so a failure is
    logged and reported, never raised.
    """
    try:
        publisher.publish(event)
        return True
    except Exception as e:
        logger.error(
            f"Failed to publish {event.event_type.value} for booking {event.booking_id}: {e}",
            extra={"business_id": event.business_id}
        )
        return False
