# booking_engine/schemas/__init__.py
from .schedule import (
    WorkingHourInput,
    WorkingHourEntry,
    OverrideInput
)

from .booking import (
    TimeSlot,
    CreateBookingPayload
)

from .notification_events import (
    NotificationEventType,
    CustomerContact,
    NotificationEvent
)

__all__ = [
    "WorkingHourInput",
    "WorkingHourEntry",
    "OverrideInput",
    "TimeSlot",
    "CreateBookingPayload",
    "NotificationEventType",
    "CustomerContact",
    "NotificationEvent",
]
