# booking_engine/models/working_hours.py
from sqlalchemy import Column, Integer, Boolean, Time, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid
from booking_engine.models.base import Base, UTCDateTime


class WorkingHoursEntry(Base):
    """
    Weekly working-hours template row.

    employee_id NULL = business default; otherwise an employee override of
    the default. Local wall-clock times in the business timezone.
    """
    __tablename__ = "working_hours"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False
    )
    employee_id = Column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=True
    )

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    start_time = Column(Time, nullable=True)  # NULL when is_off
    end_time = Column(Time, nullable=True)
    is_off = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_working_hours_scope_day", "business_id", "employee_id", "day_of_week"),
    )

    def __repr__(self):
        return (
            f"<WorkingHoursEntry(day={self.day_of_week}, {self.start_time}-{self.end_time}, "
            f"off={self.is_off}, employee_id={self.employee_id})>"
        )
