# booking_engine/models/employee.py
from sqlalchemy import Column, String, Boolean, Table, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from booking_engine.models.base import Base, UTCDateTime


# Association table for many-to-many Employee <-> Service
employee_services = Table(
    "employee_services",
    Base.metadata,
    Column("employee_id", UUID(as_uuid=True), ForeignKey("employees.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", UUID(as_uuid=True), ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
)


class Employee(Base):
    """Business-scoped staff identity, distinct from the user account"""
    __tablename__ = "employees"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="employees")
    services = relationship(
        "Service",
        secondary=employee_services,
        back_populates="employees"
    )

    def __repr__(self):
        return f"<Employee(id={self.id}, name={self.name}, business_id={self.business_id})>"

    def performs(self, service_id) -> bool:
        return any(service.id == service_id for service in self.services)
