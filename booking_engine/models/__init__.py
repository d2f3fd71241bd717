# booking_engine/models/__init__.py
from .base import Base, UTCDateTime
from .business import Business
from .service import Service, ServiceStatus
from .employee import Employee, employee_services
from .customer import Customer
from .working_hours import WorkingHoursEntry
from .availability import AvailabilityOverride
from .booking import Booking, BookingStatus, ACTIVE_STATUSES, ALLOWED_TRANSITIONS

__all__ = [
    "Base",
    "UTCDateTime",
    "Business",
    "Service",
    "ServiceStatus",
    "Employee",
    "employee_services",
    "Customer",
    "WorkingHoursEntry",
    "AvailabilityOverride",
    "Booking",
    "BookingStatus",
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
]
