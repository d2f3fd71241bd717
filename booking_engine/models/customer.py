# booking_engine/models/customer.py
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid
from booking_engine.models.base import Base, UTCDateTime


class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(200), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.name})>"

    def contact(self) -> dict:
        return {"name": self.name, "email": self.email, "phone": self.phone}
