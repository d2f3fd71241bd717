# booking_engine/models/service.py
"""
Service Model - bookable service definitions
Each service belongs to one business. Temporal fields (duration, buffers)
are frozen once a booking references the service.
"""
from sqlalchemy import Column, String, Numeric, Integer, ForeignKey, Text, Enum as SQLEnum, event, inspect, select
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum
from booking_engine.core.exceptions import ValidationError
from booking_engine.models.base import Base, UTCDateTime


class ServiceStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class Service(Base):
    __tablename__ = "services"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Duration in minutes
    duration = Column(Integer, nullable=False)

    price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")

    # Padding during which the employee is considered occupied
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)

    status = Column(
        SQLEnum(
            ServiceStatus,
            name="service_status",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=ServiceStatus.ACTIVE,
        index=True
    )

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="services")
    employees = relationship(
        "Employee",
        secondary="employee_services",
        back_populates="services"
    )

    def __repr__(self):
        return f"<Service(id={self.id}, name={self.name}, business_id={self.business_id})>"

    @property
    def is_active(self) -> bool:
        return self.status == ServiceStatus.ACTIVE

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "buffer_before_minutes": self.buffer_before_minutes or 0,
            "buffer_after_minutes": self.buffer_after_minutes or 0,
            "status": self.status.value if self.status else None,
        }



# Fields that decide how long a booking of the service occupies an employee
TEMPORAL_FIELDS = ("duration", "buffer_before_minutes", "buffer_after_minutes")


@event.listens_for(Service, "before_update")
def _freeze_booked_timing(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in TEMPORAL_FIELDS if state.attrs[name].history.has_changes()]
    if not changed:
        return

    bookings = Base.metadata.tables["bookings"]
    booked = connection.execute(
        select(func.count()).select_from(bookings).where(bookings.c.service_id == target.id)
    ).scalar()
    if booked:
        raise ValidationError(
            "Duration and buffers cannot change once the service has bookings.",
            details={"service_id": str(target.id), "fields": changed}
        )
