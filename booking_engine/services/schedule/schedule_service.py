# booking_engine/services/schedule/schedule_service.py
"""Weekly working hours and one-off availability overrides"""
import re
import logging
from datetime import datetime, time
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core.context import assert_business_scope
from booking_engine.core.exceptions import (
    BookingEngineError, ValidationError, NotFoundError, ConflictError, translate_db_error
)
from booking_engine.models.business import Business
from booking_engine.models.employee import Employee
from booking_engine.models.working_hours import WorkingHoursEntry
from booking_engine.models.availability import AvailabilityOverride
from booking_engine.schemas.schedule import WorkingHourInput, WorkingHourEntry
from booking_engine.services.booking.booking_store import BookingStore
from booking_engine.utils.identifiers import coerce_uuid
from booking_engine.utils.intervals import overlaps
from booking_engine.utils.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_UNSET = object()


class ScheduleService:
    """Handles working hours and availability overrides"""

    # ---------------------------------------------------------------- lookups

    @staticmethod
    def get_business(db: Session, business_id) -> Business:
        assert_business_scope(business_id)
        business_uuid = coerce_uuid(business_id)
        business = None
        if business_uuid:
            business = db.query(Business).filter(Business.id == business_uuid).first()
        if not business:
            raise NotFoundError("Business not found.", details={"business_id": str(business_id)})
        return business

    @staticmethod
    def get_employee(db: Session, business_id, employee_id) -> Employee:
        employee_uuid = coerce_uuid(employee_id)
        employee = None
        if employee_uuid:
            employee = db.query(Employee).filter(
                Employee.id == employee_uuid,
                Employee.business_id == coerce_uuid(business_id)
            ).first()
        if not employee:
            raise NotFoundError("Employee not found.", details={"employee_id": str(employee_id)})
        return employee

    @staticmethod
    def _scope_filter(query, business_id, employee_id):
        query = query.filter(WorkingHoursEntry.business_id == coerce_uuid(business_id))
        if employee_id is None:
            return query.filter(WorkingHoursEntry.employee_id.is_(None))
        return query.filter(WorkingHoursEntry.employee_id == coerce_uuid(employee_id))

    @staticmethod
    def _to_entry(row: WorkingHoursEntry) -> WorkingHourEntry:
        return WorkingHourEntry(
            id=str(row.id),
            day_of_week=row.day_of_week,
            start_time=row.start_time.strftime("%H:%M") if row.start_time else None,
            end_time=row.end_time.strftime("%H:%M") if row.end_time else None,
            is_off=row.is_off,
            employee_id=str(row.employee_id) if row.employee_id else None,
        )

    @staticmethod
    def _sort_key(row: WorkingHoursEntry):
        return row.day_of_week, row.start_time or time.min

    # ---------------------------------------------------------- working hours

    @staticmethod
    def _validate_entries(entries: Iterable[Union[dict, WorkingHourInput]]) -> List[dict]:
        """
        Check a full weekly set and return normalised rows.

        Every problem is reported against the day it occurs on.
        """
        rows = []
        for raw in entries:
            try:
                entry = raw if isinstance(raw, WorkingHourInput) else WorkingHourInput.model_validate(raw)
            except PydanticValidationError as e:
                raise ValidationError("Invalid working hours entry.", details={"errors": e.errors()})

            day = entry.day_of_week
            if day < 0 or day > 6:
                raise ValidationError(
                    f"Invalid day_of_week {day}. Expected 0 (Sunday) to 6 (Saturday).",
                    details={"day_of_week": day}
                )
            day_name = DAY_NAMES[day]

            if entry.is_off:
                rows.append({"day_of_week": day, "start_time": None, "end_time": None, "is_off": True})
                continue

            for label, value in (("start_time", entry.start_time), ("end_time", entry.end_time)):
                if not value or not HHMM_PATTERN.match(value):
                    raise ValidationError(
                        f"{day_name}: {label} must be in HH:MM format.",
                        details={"day_of_week": day, label: value}
                    )

            start = time.fromisoformat(entry.start_time)
            end = time.fromisoformat(entry.end_time)
            if start >= end:
                raise ValidationError(
                    f"{day_name}: start time must be before end time.",
                    details={"day_of_week": day, "start_time": entry.start_time, "end_time": entry.end_time}
                )

            rows.append({"day_of_week": day, "start_time": start, "end_time": end, "is_off": False})

        for day in range(7):
            day_rows = [r for r in rows if r["day_of_week"] == day]
            if any(r["is_off"] for r in day_rows) and len(day_rows) > 1:
                raise ValidationError(
                    f"{DAY_NAMES[day]}: a day off cannot also have working hours.",
                    details={"day_of_week": day}
                )

            windows = sorted((r["start_time"], r["end_time"]) for r in day_rows if not r["is_off"])
            for (start1, end1), (start2, end2) in zip(windows, windows[1:]):
                if overlaps(start1, end1, start2, end2):
                    raise ValidationError(
                        f"{DAY_NAMES[day]}: working hours overlap "
                        f"({start1.strftime('%H:%M')}-{end1.strftime('%H:%M')} and "
                        f"{start2.strftime('%H:%M')}-{end2.strftime('%H:%M')}).",
                        details={"day_of_week": day}
                    )

        return rows

    @staticmethod
    def set_working_hours(
            db: Session,
            business_id,
            entries: Iterable[Union[dict, WorkingHourInput]],
            employee_id=None
    ) -> List[WorkingHourEntry]:
        """
        Replace the whole weekly set for a scope.

        employee_id None = business default. Validation happens before any
        write; the delete and inserts commit together.
        """
        try:
            business = ScheduleService.get_business(db, business_id)
            if employee_id is not None:
                employee_id = ScheduleService.get_employee(db, business.id, employee_id).id

            rows = ScheduleService._validate_entries(entries)

            ScheduleService._scope_filter(
                db.query(WorkingHoursEntry), business.id, employee_id
            ).delete(synchronize_session=False)

            for row in rows:
                db.add(WorkingHoursEntry(business_id=business.id, employee_id=employee_id, **row))

            db.commit()
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "save working hours")

        logger.info(
            f"Saved {len(rows)} working hours entries for business {business.id}"
            f"{f' employee {employee_id}' if employee_id else ''}"
        )
        return ScheduleService.get_working_hours(db, business.id, employee_id)

    @staticmethod
    def get_working_hours(db: Session, business_id, employee_id=None) -> List[WorkingHourEntry]:
        """Stored weekly set for a scope, sorted by day then start time"""
        assert_business_scope(business_id)
        if employee_id is not None and coerce_uuid(employee_id) is None:
            raise NotFoundError("Employee not found.", details={"employee_id": str(employee_id)})

        rows = ScheduleService._scope_filter(db.query(WorkingHoursEntry), business_id, employee_id).all()
        return [ScheduleService._to_entry(row) for row in sorted(rows, key=ScheduleService._sort_key)]

    @staticmethod
    def get_effective_working_hours(
            db: Session,
            business_id,
            employee_id,
            day_of_week: int
    ) -> List[WorkingHoursEntry]:
        """
        Rows that govern one weekday for an employee.

        The employee's own rows win when any exist for that day (a day-off
        row included); otherwise the business default applies.
        """
        rows = []
        if employee_id is not None:
            rows = ScheduleService._scope_filter(
                db.query(WorkingHoursEntry), business_id, employee_id
            ).filter(WorkingHoursEntry.day_of_week == day_of_week).all()

        if not rows:
            rows = ScheduleService._scope_filter(
                db.query(WorkingHoursEntry), business_id, None
            ).filter(WorkingHoursEntry.day_of_week == day_of_week).all()

        return sorted(rows, key=ScheduleService._sort_key)

    # -------------------------------------------------------------- overrides

    @staticmethod
    def _normalise_range(start: datetime, end: datetime):
        if start is None or end is None:
            raise ValidationError("Override start and end are required.")
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationError(
                "Override start must be before end.",
                details={"start_time": start.isoformat(), "end_time": end.isoformat()}
            )
        return start, end

    @staticmethod
    def _check_override_conflict(db: Session, employee_id, start, end, exclude_id=None) -> None:
        query = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.employee_id == employee_id,
            AvailabilityOverride.start_time < end,
            AvailabilityOverride.end_time > start,
        )
        if exclude_id is not None:
            query = query.filter(AvailabilityOverride.id != exclude_id)

        clash = query.first()
        if clash:
            raise ConflictError(
                "Override overlaps an existing override.",
                details={"conflicting_override_id": str(clash.id)}
            )

    @staticmethod
    def _get_override(db: Session, business_id, override_id) -> AvailabilityOverride:
        override_uuid = coerce_uuid(override_id)
        override = None
        if override_uuid:
            override = db.query(AvailabilityOverride).filter(
                AvailabilityOverride.id == override_uuid,
                AvailabilityOverride.business_id == coerce_uuid(business_id)
            ).first()
        if not override:
            raise NotFoundError("Override not found.", details={"override_id": str(override_id)})
        return override

    @staticmethod
    def create_override(
            db: Session,
            business_id,
            employee_id,
            start: datetime,
            end: datetime,
            is_unavailable: bool = True,
            reason: Optional[str] = None
    ) -> AvailabilityOverride:
        """Add an override; overlapping another override of the employee is a conflict"""
        try:
            business = ScheduleService.get_business(db, business_id)
            employee = ScheduleService.get_employee(db, business.id, employee_id)
            start, end = ScheduleService._normalise_range(start, end)

            BookingStore(db).lock_employee(employee.id)
            ScheduleService._check_override_conflict(db, employee.id, start, end)

            override = AvailabilityOverride(
                business_id=business.id,
                employee_id=employee.id,
                start_time=start,
                end_time=end,
                is_unavailable=is_unavailable,
                reason=reason,
            )
            db.add(override)
            db.commit()
            db.refresh(override)
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "create override")

        logger.info(f"Created override {override.id} for employee {employee.id}")
        return override

    @staticmethod
    def update_override(
            db: Session,
            business_id,
            override_id,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
            is_unavailable: Optional[bool] = None,
            reason=_UNSET
    ) -> AvailabilityOverride:
        """Partial update; the conflict check ignores the override itself"""
        try:
            ScheduleService.get_business(db, business_id)
            override = ScheduleService._get_override(db, business_id, override_id)

            start, end = ScheduleService._normalise_range(
                start if start is not None else override.start_time,
                end if end is not None else override.end_time,
            )

            BookingStore(db).lock_employee(override.employee_id)
            ScheduleService._check_override_conflict(
                db, override.employee_id, start, end, exclude_id=override.id
            )

            override.start_time = start
            override.end_time = end
            if is_unavailable is not None:
                override.is_unavailable = is_unavailable
            if reason is not _UNSET:
                override.reason = reason

            db.commit()
            db.refresh(override)
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "update override")

        logger.info(f"Updated override {override.id}")
        return override

    @staticmethod
    def delete_override(db: Session, business_id, override_id) -> bool:
        try:
            ScheduleService.get_business(db, business_id)
            override = ScheduleService._get_override(db, business_id, override_id)

            db.delete(override)
            db.commit()
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "delete override")

        logger.info(f"Deleted override {override_id}")
        return True

    @staticmethod
    def get_overrides(
            db: Session,
            business_id,
            employee_id,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None
    ) -> List[AvailabilityOverride]:
        """Employee overrides ordered by start; a range keeps the overlapping ones"""
        assert_business_scope(business_id)
        employee_uuid = coerce_uuid(employee_id)
        if employee_uuid is None:
            raise NotFoundError("Employee not found.", details={"employee_id": str(employee_id)})

        query = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.business_id == coerce_uuid(business_id),
            AvailabilityOverride.employee_id == employee_uuid,
        )
        if start is not None:
            query = query.filter(AvailabilityOverride.end_time > ensure_utc(start))
        if end is not None:
            query = query.filter(AvailabilityOverride.start_time < ensure_utc(end))

        return query.order_by(AvailabilityOverride.start_time).all()
