# booking_engine/schemas/notification_events.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


class NotificationEventType(str, Enum):
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    BOOKING_REMINDER_24H = "booking_reminder_24h"
    BOOKING_REMINDER_1H = "booking_reminder_1h"


class CustomerContact(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class NotificationEvent(BaseModel):
    """Structured event handed to the notification delivery worker"""
    event_type: NotificationEventType = Field(..., description="What happened")
    booking_id: str = Field(..., description="Booking identifier")
    business_id: str = Field(..., description="Business identifier")
    customer: CustomerContact = Field(default_factory=CustomerContact)
    service_name: Optional[str] = Field(None, description="Booked service")
    service_duration: Optional[int] = Field(None, description="Duration in minutes")
    employee_name: Optional[str] = Field(None, description="Assigned employee")
    start_time: datetime = Field(..., description="Booking start (UTC)")
    business_timezone: str = Field("UTC", description="Zone the customer-facing copy is rendered in")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    previous_booking_id: Optional[str] = Field(None, description="Set on booking_rescheduled")
