"""Shared test fixtures for the booking engine tests."""

import os

# The database module builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from booking_engine.config.database import create_db_engine, create_tables
from booking_engine.models import (
    Booking, BookingStatus, Business, Customer, Employee, Service
)
from booking_engine.schemas.notification_events import NotificationEvent
from booking_engine.services.notification.notification_service import NotificationPublisher
from booking_engine.services.schedule.schedule_service import ScheduleService

# 2030-01-07 is a Monday
MONDAY = "2030-01-07"
MONDAY_DOW = 1

# Well before every booking the tests create
EARLY_NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingPublisher(NotificationPublisher):
    """Keeps published events in memory"""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def publish(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [event.event_type.value for event in self.events]


class FailingPublisher(RecordingPublisher):
    """Fails for the listed booking ids, records the rest"""

    def __init__(self, failing_booking_ids=()):
        super().__init__()
        self.failing = {str(b) for b in failing_booking_ids}

    def publish(self, event: NotificationEvent) -> None:
        if not self.failing or event.booking_id in self.failing:
            raise RuntimeError("broker unavailable")
        super().publish(event)


class DataFactory:
    """Creates committed business data through one session"""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def business(self, tz: str = "UTC", **booking_settings) -> Business:
        return self._save(Business(name="Test Salon", timezone=tz, booking_settings=booking_settings))

    def service(
            self,
            business: Business,
            duration: int = 60,
            before: int = 0,
            after: int = 0,
            name: str = "Haircut",
            **kwargs
    ) -> Service:
        return self._save(Service(
            business_id=business.id,
            name=name,
            duration=duration,
            buffer_before_minutes=before,
            buffer_after_minutes=after,
            **kwargs
        ))

    def employee(self, business: Business, name: str = "Alice", services=(), **kwargs) -> Employee:
        employee = Employee(business_id=business.id, name=name, **kwargs)
        employee.services.extend(services)
        return self._save(employee)

    def customer(self, business: Business, name: str = "Carol") -> Customer:
        return self._save(Customer(
            business_id=business.id,
            name=name,
            email=f"{name.lower()}@example.com",
            phone="+15550100",
        ))

    def hours(self, business: Business, day: int = MONDAY_DOW, start: str = "09:00", end: str = "17:00",
              employee: Optional[Employee] = None):
        return ScheduleService.set_working_hours(
            self.db,
            business.id,
            [{"day_of_week": day, "start_time": start, "end_time": end}],
            employee_id=employee.id if employee else None,
        )

    def booking(
            self,
            business: Business,
            service: Service,
            employee: Employee,
            customer: Customer,
            start: datetime,
            status: BookingStatus = BookingStatus.CONFIRMED,
    ) -> Booking:
        return self._save(Booking(
            business_id=business.id,
            service_id=service.id,
            employee_id=employee.id,
            customer_id=customer.id,
            start_time=start,
            end_time=start + timedelta(minutes=service.duration),
            status=status,
        ))


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    db_engine = create_db_engine("sqlite://")
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def factory(db) -> DataFactory:
    return DataFactory(db)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def salon(factory):
    """UTC business with one 60 minute service, one employee and Monday 09:00-17:00 hours."""
    business = factory.business("UTC")
    service = factory.service(business)
    employee = factory.employee(business, "Alice", services=[service])
    customer = factory.customer(business)
    factory.hours(business)
    return business, service, employee, customer
