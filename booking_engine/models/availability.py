# booking_engine/models/availability.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from booking_engine.models.base import Base, UTCDateTime
import uuid


class AvailabilityOverride(Base):
    """One-off exception to the weekly template (time off, special hours)"""
    __tablename__ = "availability_overrides"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False
    )
    employee_id = Column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False
    )

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    is_unavailable = Column(Boolean, nullable=False, default=True)  # False = extra availability
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_availability_overrides_employee_range", "employee_id", "start_time", "end_time"),
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "employee_id": str(self.employee_id),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "is_unavailable": self.is_unavailable,
            "reason": self.reason,
        }
