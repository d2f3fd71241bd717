# booking_engine/schemas/schedule.py
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class WorkingHourInput(BaseModel):
    """One row of a weekly working-hours save; times are local HH:MM"""
    day_of_week: int = Field(..., description="0=Sunday ... 6=Saturday")
    start_time: Optional[str] = Field(None, description="Local start time, HH:MM")
    end_time: Optional[str] = Field(None, description="Local end time, HH:MM")
    is_off: bool = Field(False, description="Day off; times are ignored")


class WorkingHourEntry(BaseModel):
    """Stored working-hours row as returned to callers"""
    id: str
    day_of_week: int
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    is_off: bool = False
    employee_id: Optional[str] = Field(None, description="None for the business default")


class OverrideInput(BaseModel):
    """Availability override; naive instants are read as UTC"""
    start_time: datetime = Field(..., description="Override start (UTC)")
    end_time: datetime = Field(..., description="Override end (UTC)")
    is_unavailable: bool = Field(True, description="False = extra availability")
    reason: Optional[str] = Field(None, description="Holiday, vacation, ...")
