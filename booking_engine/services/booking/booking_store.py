# booking_engine/services/booking/booking_store.py
"""
Atomic check-and-insert for bookings.

The store owns the per-employee lock: two writers touching the same
employee are serialised for the lifetime of the surrounding transaction,
so a re-check under the lock sees every committed booking.
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import text
from sqlalchemy.orm import Session

from booking_engine.core.exceptions import ConflictError
from booking_engine.models.booking import Booking
from booking_engine.models.employee import Employee

logger = logging.getLogger(__name__)


class BookingStore:
    """Per-employee locking and reservation inside the caller's transaction"""

    def __init__(self, db: Session):
        self.db = db

    def lock_employee(self, employee_id) -> None:
        """
        Take the employee lock, released at commit or rollback.

        - PostgreSQL: transaction-scoped advisory lock keyed by the employee id
        - SQLite: the transaction was opened with BEGIN IMMEDIATE and already
          holds the database write lock
        - anything else: row lock on the employee
        """
        dialect = self.db.get_bind().dialect.name

        if dialect == "postgresql":
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
                {"key": str(employee_id)},
            )
        elif dialect == "sqlite":
            self.db.connection()
        else:
            self.db.query(Employee.id).filter(Employee.id == employee_id).with_for_update().first()

        logger.debug(f"Acquired booking lock for employee {employee_id}")

    def try_reserve(
            self,
            employee_id,
            start: datetime,
            end: datetime,
            is_free: Callable[[], bool],
            booking: Booking
    ) -> Booking:
        """
        Lock the employee, re-run the availability check and insert.

        Raises ConflictError when the slot was taken in the meantime. The
        booking is flushed, not committed.
        """
        self.lock_employee(employee_id)

        if not is_free():
            logger.info(
                f"Slot {start.isoformat()} - {end.isoformat()} no longer free for employee {employee_id}"
            )
            raise ConflictError(
                "Selected slot is no longer available.",
                details={"employee_id": str(employee_id), "start_time": start.isoformat()},
            )

        booking.employee_id = employee_id
        booking.start_time = start
        booking.end_time = end
        self.db.add(booking)
        self.db.flush()
        return booking
