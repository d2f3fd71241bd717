"""Tests for the per-employee lock around check-and-insert."""

import threading
from unittest.mock import MagicMock

from sqlalchemy.orm import sessionmaker

from booking_engine.config.database import create_db_engine, create_tables
from booking_engine.core.exceptions import ConflictError
from booking_engine.models import Booking, BookingStatus
from booking_engine.services.booking.booking_service import BookingService
from booking_engine.services.booking.booking_store import BookingStore

from conftest import EARLY_NOW, DataFactory, RecordingPublisher, utc


class TestConcurrentCreate:

    def test_only_one_of_two_identical_requests_commits(self, tmp_path):
        """Two threads booking the same employee and slot: one wins, one conflicts."""
        engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
        create_tables(engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        factory = DataFactory(setup)
        business = factory.business()
        service = factory.service(business)
        employee = factory.employee(business, services=[service])
        customer = factory.customer(business)
        factory.hours(business)
        business_id = business.id
        request = {
            "service_id": str(service.id),
            "customer_id": str(customer.id),
            "employee_id": str(employee.id),
            "start_time": utc(2030, 1, 7, 10),
        }
        setup.close()

        barrier = threading.Barrier(2)
        results = []
        results_lock = threading.Lock()

        def attempt():
            db = Session()
            try:
                barrier.wait()
                BookingService.create_booking(
                    db, business_id, request, publisher=RecordingPublisher(), now=EARLY_NOW
                )
                outcome = "created"
            except ConflictError:
                outcome = "conflict"
            except Exception as e:
                outcome = f"error: {e!r}"
            finally:
                db.close()
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(results) == ["conflict", "created"]

        check = Session()
        try:
            active = check.query(Booking).filter(
                Booking.status.in_([BookingStatus.PENDING, BookingStatus.CONFIRMED])
            ).count()
            assert active == 1
        finally:
            check.close()
            engine.dispose()


class TestLockEmployee:

    def _session(self, dialect_name):
        db = MagicMock()
        db.get_bind.return_value.dialect.name = dialect_name
        return db

    def test_postgres_uses_transaction_advisory_lock(self):
        db = self._session("postgresql")
        BookingStore(db).lock_employee("emp-1")

        statement, params = db.execute.call_args[0]
        assert "pg_advisory_xact_lock" in str(statement)
        assert params == {"key": "emp-1"}

    def test_sqlite_only_opens_the_transaction(self):
        db = self._session("sqlite")
        BookingStore(db).lock_employee("emp-1")

        db.connection.assert_called_once()
        db.execute.assert_not_called()

    def test_other_dialects_lock_the_employee_row(self):
        db = self._session("mysql")
        BookingStore(db).lock_employee("emp-1")

        db.query.return_value.filter.return_value.with_for_update.assert_called_once()
