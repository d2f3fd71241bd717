# booking_engine/services/availability/availability_service.py
"""
Bookable slots for a service on a business-local date.

Slot listing and the booking-time re-check share one free-interval
computation, so a slot that is listed is always accepted and vice versa.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import ValidationError, NotFoundError
from booking_engine.models.availability import AvailabilityOverride
from booking_engine.models.booking import Booking, ACTIVE_STATUSES
from booking_engine.models.business import Business
from booking_engine.models.employee import Employee, employee_services
from booking_engine.models.service import Service
from booking_engine.schemas.booking import TimeSlot
from booking_engine.services.schedule.schedule_service import ScheduleService
from booking_engine.utils.identifiers import coerce_uuid
from booking_engine.utils.intervals import (
    Interval, clip_interval, contains, merge_intervals, subtract_intervals
)
from booking_engine.utils.timezone_utils import (
    day_of_week, ensure_utc, local_day_bounds, parse_date, split_local, to_utc
)

logger = logging.getLogger(__name__)

settings = get_settings()

# Widest range of local dates a single range query may cover
MAX_RANGE_DAYS = 31

# Existing bookings this far outside the local day can still reach into it via buffers
BOOKING_LOOKAROUND = timedelta(days=1)


class AvailabilityService:
    """Computes free time and bookable slots per employee"""

    # ---------------------------------------------------------------- lookups

    @staticmethod
    def get_service(db: Session, business_id, service_id) -> Service:
        """Active service of the business, or NotFoundError / ValidationError"""
        service_uuid = coerce_uuid(service_id)
        service = None
        if service_uuid:
            service = db.query(Service).filter(
                Service.id == service_uuid,
                Service.business_id == coerce_uuid(business_id)
            ).first()
        if not service:
            raise NotFoundError("Service not found.", details={"service_id": str(service_id)})
        if not service.is_active:
            raise ValidationError("Service is not available for booking.", details={"service_id": str(service_id)})
        if not service.duration or service.duration <= 0:
            raise ValidationError(
                "Service duration must be positive.",
                details={"service_id": str(service_id), "duration": service.duration}
            )
        return service

    @staticmethod
    def get_candidates(db: Session, business: Business, service: Service, employee_id=None) -> List[Employee]:
        """
        Employees who could serve the service.

        With employee_id only that employee, who must be active and assigned
        to the service; otherwise every such employee ordered by name then id.
        """
        if employee_id is not None:
            employee = ScheduleService.get_employee(db, business.id, employee_id)
            if not employee.is_active:
                raise ValidationError("Employee is not active.", details={"employee_id": str(employee.id)})
            if not employee.performs(service.id):
                raise ValidationError(
                    "Employee does not perform this service.",
                    details={"employee_id": str(employee.id), "service_id": str(service.id)}
                )
            return [employee]

        employees = db.query(Employee).join(
            employee_services, employee_services.c.employee_id == Employee.id
        ).filter(
            employee_services.c.service_id == service.id,
            Employee.business_id == business.id,
            Employee.is_active.is_(True)
        ).all()
        return sorted(employees, key=lambda e: (e.name or "", str(e.id)))

    @staticmethod
    def slot_step(business: Business, service: Service) -> timedelta:
        """Spacing between listed slot starts; must be a positive number of minutes"""
        raw = business.slot_interval_minutes or settings.SLOT_INTERVAL_MINUTES or service.duration
        try:
            minutes = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(
                "slot_interval_minutes must be a whole number of minutes.",
                details={"business_id": str(business.id), "slot_interval_minutes": raw}
            )
        if minutes <= 0:
            raise ValidationError(
                "slot_interval_minutes must be positive.",
                details={"business_id": str(business.id), "slot_interval_minutes": minutes}
            )
        return timedelta(minutes=minutes)

    # ---------------------------------------------------------- free intervals

    @staticmethod
    def _working_windows(db: Session, business: Business, employee_id, local_date: date) -> List[Interval]:
        tz_name = business.timezone
        windows = []
        rows = ScheduleService.get_effective_working_hours(
            db, business.id, employee_id, day_of_week(local_date)
        )
        for row in rows:
            if row.is_off or row.start_time is None or row.end_time is None:
                continue
            start = to_utc(local_date, row.start_time, tz_name)
            end = to_utc(local_date, row.end_time, tz_name)
            if start < end:
                windows.append((start, end))
        return windows

    @staticmethod
    def _open_intervals(
            db: Session,
            business: Business,
            employee_id,
            local_date: date,
            bounds: Interval
    ) -> List[Interval]:
        """
        Working windows plus extra-availability overrides minus time off, in UTC.

        The next day's windows are included so that open time running past
        local midnight stays one interval; everything is clipped to bounds.
        """
        windows = (
            AvailabilityService._working_windows(db, business, employee_id, local_date)
            + AvailabilityService._working_windows(db, business, employee_id, local_date + timedelta(days=1))
        )

        overrides = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.employee_id == employee_id,
            AvailabilityOverride.start_time < bounds[1],
            AvailabilityOverride.end_time > bounds[0],
        ).all()

        blocked = []
        for override in overrides:
            span = (override.start_time, override.end_time)
            if override.is_unavailable:
                blocked.append(span)
            else:
                windows.append(span)

        open_intervals = []
        for window in merge_intervals(windows):
            clipped = clip_interval(window, bounds)
            if clipped:
                open_intervals.append(clipped)
        return subtract_intervals(open_intervals, blocked)

    @staticmethod
    def _occupied_intervals(
            db: Session,
            employee_id,
            service: Service,
            day_bounds: Interval,
            exclude_booking_id=None
    ) -> List[Interval]:
        """
        Times at which a new booking of `service` may not start or run.

        Each active booking is padded by its own buffers and then by the
        requested service's buffers, so the padded intervals of the two
        bookings can never intersect.
        """
        query = db.query(Booking).filter(
            Booking.employee_id == employee_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < day_bounds[1] + BOOKING_LOOKAROUND,
            Booking.end_time > day_bounds[0] - BOOKING_LOOKAROUND,
        )
        exclude_uuid = coerce_uuid(exclude_booking_id)
        if exclude_uuid is not None:
            query = query.filter(Booking.id != exclude_uuid)

        new_before = timedelta(minutes=service.buffer_before_minutes or 0)
        new_after = timedelta(minutes=service.buffer_after_minutes or 0)

        occupied = []
        for booking in query.all():
            own_before = timedelta(minutes=booking.service.buffer_before_minutes or 0)
            own_after = timedelta(minutes=booking.service.buffer_after_minutes or 0)
            occupied.append((
                booking.start_time - own_before - new_after,
                booking.end_time + own_after + new_before,
            ))
        return merge_intervals(occupied)

    @staticmethod
    def free_intervals(
            db: Session,
            business: Business,
            service: Service,
            employee_id,
            local_date: date,
            exclude_booking_id=None
    ) -> List[Interval]:
        """
        Intervals in which the employee can take a booking of `service`
        starting on the local day.

        The local day is extended by the service duration, so a booking
        that starts before midnight may end after it.
        """
        day_start, day_end = local_day_bounds(local_date, business.timezone)
        bounds = (day_start, day_end + timedelta(minutes=service.duration))
        open_intervals = AvailabilityService._open_intervals(db, business, employee_id, local_date, bounds)
        if not open_intervals:
            return []

        occupied = AvailabilityService._occupied_intervals(
            db, employee_id, service, bounds, exclude_booking_id
        )
        return subtract_intervals(open_intervals, occupied)

    @staticmethod
    def _slot_starts(
            free: List[Interval],
            duration: timedelta,
            step: timedelta,
            now: datetime,
            day_bounds: Interval
    ) -> List[datetime]:
        starts = []
        for free_start, free_end in free:
            current = free_start
            while current + duration <= free_end and current < day_bounds[1]:
                if current >= now and current >= day_bounds[0]:
                    starts.append(current)
                current += step
        return starts

    # ------------------------------------------------------------------ slots

    @staticmethod
    def compute_available_slots(
            db: Session,
            business_id,
            service_id,
            date,
            employee_id=None,
            now: Optional[datetime] = None
    ) -> List[TimeSlot]:
        """
        Bookable slots on a business-local date.

        Without employee_id the candidates' slots are merged by (start, end)
        and each slot carries the first free employee in candidate order.
        """
        business = ScheduleService.get_business(db, business_id)
        service = AvailabilityService.get_service(db, business.id, service_id)
        candidates = AvailabilityService.get_candidates(db, business, service, employee_id)
        local_date = parse_date(date)
        now = ensure_utc(now) if now else datetime.now(timezone.utc)

        duration = timedelta(minutes=service.duration)
        step = AvailabilityService.slot_step(business, service)
        day_bounds = local_day_bounds(local_date, business.timezone)

        merged: Dict[Tuple[datetime, datetime], str] = {}
        for employee in candidates:
            free = AvailabilityService.free_intervals(db, business, service, employee.id, local_date)
            for start in AvailabilityService._slot_starts(free, duration, step, now, day_bounds):
                merged.setdefault((start, start + duration), str(employee.id))

        slots = [
            TimeSlot(start=start, end=end, employee_id=emp_id, available=True)
            for (start, end), emp_id in sorted(merged.items())
        ]

        logger.info(
            f"Computed {len(slots)} slots for service {service.id} on {local_date.isoformat()}",
            extra={"business_id": str(business.id), "candidates": len(candidates)}
        )
        return slots

    @staticmethod
    def compute_available_slots_for_range(
            db: Session,
            business_id,
            service_id,
            start_date,
            end_date,
            employee_id=None,
            now: Optional[datetime] = None
    ) -> Dict[str, List[TimeSlot]]:
        """Slots per local date between start_date and end_date inclusive; empty days omitted"""
        first = parse_date(start_date)
        last = parse_date(end_date)
        if last < first:
            raise ValidationError("end_date must not be before start_date.")
        if (last - first).days + 1 > MAX_RANGE_DAYS:
            raise ValidationError(f"Date range cannot exceed {MAX_RANGE_DAYS} days.")

        result = {}
        current = first
        while current <= last:
            slots = AvailabilityService.compute_available_slots(
                db, business_id, service_id, current, employee_id=employee_id, now=now
            )
            if slots:
                result[current.isoformat()] = slots
            current += timedelta(days=1)
        return result

    @staticmethod
    def _is_employee_free(
            db: Session,
            business: Business,
            service: Service,
            employee_id,
            start: datetime,
            exclude_booking_id=None
    ) -> bool:
        local_date, _ = split_local(start, business.timezone)
        slot = (start, start + timedelta(minutes=service.duration))
        free = AvailabilityService.free_intervals(
            db, business, service, employee_id, local_date, exclude_booking_id
        )
        return any(contains(interval, slot) for interval in free)

    @staticmethod
    def find_available_employee(
            db: Session,
            business_id,
            service_id,
            start_utc: datetime,
            employee_id=None,
            now: Optional[datetime] = None,
            exclude_booking_id=None
    ) -> Optional[Employee]:
        """First candidate free for the whole of [start, start + duration), or None"""
        business = ScheduleService.get_business(db, business_id)
        service = AvailabilityService.get_service(db, business.id, service_id)
        start = ensure_utc(start_utc)
        now = ensure_utc(now) if now else datetime.now(timezone.utc)

        if start < now:
            return None

        for employee in AvailabilityService.get_candidates(db, business, service, employee_id):
            if AvailabilityService._is_employee_free(db, business, service, employee.id, start, exclude_booking_id):
                return employee
        return None

    @staticmethod
    def is_slot_still_available(
            db: Session,
            business_id,
            service_id,
            start_utc: datetime,
            employee_id=None,
            now: Optional[datetime] = None,
            exclude_booking_id=None
    ) -> bool:
        """Re-check one start instant against live data"""
        return AvailabilityService.find_available_employee(
            db, business_id, service_id, start_utc,
            employee_id=employee_id, now=now, exclude_booking_id=exclude_booking_id
        ) is not None
