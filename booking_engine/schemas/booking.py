# booking_engine/schemas/booking.py
from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from uuid import UUID
from datetime import datetime


class TimeSlot(BaseModel):
    """Bookable slot; instants are UTC"""
    start: datetime = Field(..., description="Slot start (UTC)")
    end: datetime = Field(..., description="Slot end (UTC)")
    employee_id: Optional[str] = Field(None, description="Employee who would serve the slot")
    available: bool = Field(True, description="Whether slot is available")

    @field_validator("end")
    @classmethod
    def end_after_start(cls, v: datetime, info) -> datetime:
        start = info.data.get("start")
        if start and v <= start:
            raise ValueError("End time must be after start time")
        return v


class CreateBookingPayload(BaseModel):
    """Booking request as accepted by BookingService.create_booking"""
    service_id: UUID = Field(..., description="Service identifier")
    customer_id: UUID = Field(..., description="Customer identifier")
    start_time: datetime = Field(..., description="Requested start (UTC)")
    employee_id: Optional[UUID] = Field(None, description="Preferred employee; any free one if omitted")
    notes: Optional[str] = Field(None, description="Customer notes")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form booking metadata")
