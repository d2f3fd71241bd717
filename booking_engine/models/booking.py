# booking_engine/models/booking.py
from sqlalchemy import (
    Column, Boolean, Text, JSON, ForeignKey, Index, CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from booking_engine.models.base import Base, UTCDateTime
import uuid
import enum


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REJECTED = "rejected"
    NO_SHOW = "no_show"


# Statuses that hold the employee's time
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.REJECTED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.REJECTED: set(),
    BookingStatus.NO_SHOW: set(),
}


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    employee_id = Column(UUID(as_uuid=True), ForeignKey("employees.id"), nullable=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    # UTC instants
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)

    status = Column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    notes = Column(Text, nullable=True)
    booking_metadata = Column("metadata", JSON, default=dict)

    # Reminders: one claim flag per horizon
    reminder_sent_24h = Column(Boolean, nullable=False, default=False)
    reminder_sent_1h = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    business = relationship("Business")
    service = relationship("Service")
    employee = relationship("Employee")
    customer = relationship("Customer")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_bookings_start_before_end"),
        Index("ix_bookings_employee_start", "employee_id", "start_time"),
        Index("ix_bookings_status_start", "status", "start_time"),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, status={self.status}, start={self.start_time})>"

    def can_transition_to(self, new_status: BookingStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, set())

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "service_id": str(self.service_id),
            "employee_id": str(self.employee_id) if self.employee_id else None,
            "customer_id": str(self.customer_id),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value if self.status else None,
            "notes": self.notes,
            "metadata": self.booking_metadata or {},
            "reminder_sent_24h": self.reminder_sent_24h,
            "reminder_sent_1h": self.reminder_sent_1h,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
