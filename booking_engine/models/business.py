# booking_engine/models/business.py
"""
Business Model - tenant-scoped operator offering services and employing staff
"""
from sqlalchemy import Column, String, Boolean, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from booking_engine.models.base import Base, UTCDateTime


class Business(Base):
    __tablename__ = "businesses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    name = Column(String(200), nullable=False)

    # IANA timezone identifier, e.g. "America/New_York"
    timezone = Column(String(64), nullable=False, default="UTC")

    # Booking policy: {"auto_confirm": bool, "slot_interval_minutes": int}
    booking_settings = Column(JSON, default=dict)

    is_active = Column(Boolean, default=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    services = relationship("Service", back_populates="business")
    employees = relationship("Employee", back_populates="business")

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"

    @property
    def auto_confirm(self):
        """Per-business override of the auto-confirm policy, or None"""
        return (self.booking_settings or {}).get("auto_confirm")

    @property
    def slot_interval_minutes(self):
        return (self.booking_settings or {}).get("slot_interval_minutes")

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "name": self.name,
            "timezone": self.timezone,
            "booking_settings": self.booking_settings or {},
            "is_active": self.is_active,
        }
