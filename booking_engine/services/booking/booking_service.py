# booking_engine/services/booking/booking_service.py
"""Booking creation, status changes and rescheduling"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.config.settings import get_settings
from booking_engine.core.context import assert_business_scope
from booking_engine.core.exceptions import (
    BookingEngineError, ValidationError, NotFoundError, ConflictError, translate_db_error
)
from booking_engine.models.booking import Booking, BookingStatus, ACTIVE_STATUSES
from booking_engine.models.customer import Customer
from booking_engine.schemas.booking import CreateBookingPayload
from booking_engine.schemas.notification_events import NotificationEventType
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.booking.booking_store import BookingStore
from booking_engine.services.notification.notification_service import (
    NotificationPublisher, build_booking_event, get_notification_publisher, publish_safely
)
from booking_engine.services.schedule.schedule_service import ScheduleService
from booking_engine.utils.identifiers import coerce_uuid
from booking_engine.utils.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)

settings = get_settings()

SLOT_TAKEN_MESSAGE = "Selected slot is no longer available."

# Status changes that notify the customer
STATUS_EVENTS = {
    BookingStatus.CONFIRMED: NotificationEventType.BOOKING_CONFIRMED,
    BookingStatus.CANCELLED: NotificationEventType.BOOKING_CANCELLED,
}


class BookingService:
    """Handles booking transactions"""

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _get_customer(db: Session, business_id, customer_id) -> Customer:
        customer_uuid = coerce_uuid(customer_id)
        customer = None
        if customer_uuid:
            customer = db.query(Customer).filter(
                Customer.id == customer_uuid,
                Customer.business_id == business_id
            ).first()
        if not customer:
            raise NotFoundError("Customer not found.", details={"customer_id": str(customer_id)})
        return customer

    @staticmethod
    def _get_booking_for_update(db: Session, business_id, booking_id) -> Booking:
        booking_uuid = coerce_uuid(booking_id)
        booking = None
        if booking_uuid:
            booking = db.query(Booking).filter(
                Booking.id == booking_uuid,
                Booking.business_id == business_id
            ).with_for_update().first()
        if not booking:
            raise NotFoundError("Booking not found.", details={"booking_id": str(booking_id)})
        return booking

    @staticmethod
    def _auto_confirm(business) -> bool:
        if business.auto_confirm is not None:
            return bool(business.auto_confirm)
        return settings.BOOKING_AUTO_CONFIRM

    @staticmethod
    def _publish(
            publisher: Optional[NotificationPublisher],
            booking: Booking,
            event_type: NotificationEventType,
            previous_booking_id: Optional[str] = None
    ) -> None:
        event = build_booking_event(booking, event_type, previous_booking_id=previous_booking_id)
        publish_safely(publisher or get_notification_publisher(), event)

    @staticmethod
    def _reserve_first_free(
            db: Session,
            business,
            service,
            candidates,
            start: datetime,
            make_booking,
            now: datetime,
            exclude_booking_id=None
    ) -> Booking:
        """
        Reserve the first candidate that is still free under its lock.

        make_booking() builds a fresh unsaved Booking for each attempt.
        """
        store = BookingStore(db)
        end = start + timedelta(minutes=service.duration)

        for employee in candidates:
            def is_free(employee_id=employee.id):
                return AvailabilityService.is_slot_still_available(
                    db, business.id, service.id, start,
                    employee_id=employee_id, now=now, exclude_booking_id=exclude_booking_id
                )

            try:
                return store.try_reserve(employee.id, start, end, is_free, make_booking())
            except ConflictError:
                logger.debug(f"Employee {employee.id} taken at {start.isoformat()}, trying next candidate")

        raise ConflictError(SLOT_TAKEN_MESSAGE, details={"start_time": start.isoformat()})

    # --------------------------------------------------------------- creation

    @staticmethod
    def create_booking(
            db: Session,
            business_id,
            payload: Union[dict, CreateBookingPayload],
            publisher: Optional[NotificationPublisher] = None,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        Create a booking if the slot is still free.

        The re-check and the insert run under the employee lock in one
        transaction. Without an employee the candidates are tried in order.
        """
        try:
            payload = payload if isinstance(payload, CreateBookingPayload) \
                else CreateBookingPayload.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError("Invalid booking request.", details={"errors": e.errors()})

        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        start = ensure_utc(payload.start_time)

        try:
            business = ScheduleService.get_business(db, business_id)
            service = AvailabilityService.get_service(db, business.id, payload.service_id)
            customer = BookingService._get_customer(db, business.id, payload.customer_id)
            candidates = AvailabilityService.get_candidates(db, business, service, payload.employee_id)

            status = BookingStatus.CONFIRMED if BookingService._auto_confirm(business) else BookingStatus.PENDING

            def make_booking():
                return Booking(
                    business_id=business.id,
                    service_id=service.id,
                    customer_id=customer.id,
                    status=status,
                    notes=payload.notes,
                    booking_metadata=dict(payload.metadata),
                )

            booking = BookingService._reserve_first_free(
                db, business, service, candidates, start, make_booking, now
            )

            db.commit()
            db.refresh(booking)
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "create booking")

        logger.info(
            f"Created {booking.status.value} booking {booking.id} for employee {booking.employee_id} "
            f"at {booking.start_time.isoformat()}",
            extra={"business_id": str(booking.business_id)}
        )

        if booking.status == BookingStatus.CONFIRMED:
            BookingService._publish(publisher, booking, NotificationEventType.BOOKING_CONFIRMED)

        return booking

    # ---------------------------------------------------------- status change

    @staticmethod
    def update_booking_status(
            db: Session,
            business_id,
            booking_id,
            status: Union[str, BookingStatus],
            reason: Optional[str] = None,
            publisher: Optional[NotificationPublisher] = None
    ) -> Booking:
        """Apply one state-machine transition to a locked booking"""
        try:
            new_status = BookingStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown booking status '{status}'.", details={"status": str(status)})

        try:
            business = ScheduleService.get_business(db, business_id)
            booking = BookingService._get_booking_for_update(db, business.id, booking_id)
            old_status = booking.status

            if not booking.can_transition_to(new_status):
                raise ValidationError(
                    f"Cannot change booking status from {old_status.value} to {new_status.value}.",
                    details={"booking_id": str(booking.id), "from": old_status.value, "to": new_status.value}
                )

            booking.status = new_status
            if new_status == BookingStatus.CANCELLED:
                booking.cancelled_at = datetime.now(timezone.utc)
                booking.cancellation_reason = reason

            db.commit()
            db.refresh(booking)
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "update booking status")

        logger.info(f"Booking {booking.id}: {old_status.value} -> {new_status.value}")

        event_type = STATUS_EVENTS.get(new_status)
        if event_type:
            BookingService._publish(publisher, booking, event_type)

        return booking

    @staticmethod
    def confirm_booking(db: Session, business_id, booking_id, publisher=None) -> Booking:
        return BookingService.update_booking_status(
            db, business_id, booking_id, BookingStatus.CONFIRMED, publisher=publisher
        )

    @staticmethod
    def cancel_booking(db: Session, business_id, booking_id, reason: Optional[str] = None, publisher=None) -> Booking:
        return BookingService.update_booking_status(
            db, business_id, booking_id, BookingStatus.CANCELLED, reason=reason, publisher=publisher
        )

    @staticmethod
    def reject_booking(db: Session, business_id, booking_id, publisher=None) -> Booking:
        return BookingService.update_booking_status(
            db, business_id, booking_id, BookingStatus.REJECTED, publisher=publisher
        )

    @staticmethod
    def complete_booking(db: Session, business_id, booking_id, publisher=None) -> Booking:
        return BookingService.update_booking_status(
            db, business_id, booking_id, BookingStatus.COMPLETED, publisher=publisher
        )

    @staticmethod
    def mark_no_show(db: Session, business_id, booking_id, publisher=None) -> Booking:
        return BookingService.update_booking_status(
            db, business_id, booking_id, BookingStatus.NO_SHOW, publisher=publisher
        )

    # ------------------------------------------------------------- reschedule

    @staticmethod
    def reschedule_booking(
            db: Session,
            business_id,
            booking_id,
            new_start: datetime,
            employee_id=None,
            publisher: Optional[NotificationPublisher] = None,
            now: Optional[datetime] = None
    ) -> Booking:
        """
        Move a booking by cancelling it and creating its replacement in one
        transaction. The replacement keeps customer, service and status and
        records the original id in metadata.rescheduled_from.

        employee_id None keeps the current employee.
        """
        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        start = ensure_utc(new_start)

        try:
            business = ScheduleService.get_business(db, business_id)
            original = BookingService._get_booking_for_update(db, business.id, booking_id)

            if original.status not in ACTIVE_STATUSES:
                raise ValidationError(
                    f"Cannot reschedule a {original.status.value} booking.",
                    details={"booking_id": str(original.id), "status": original.status.value}
                )

            service = AvailabilityService.get_service(db, business.id, original.service_id)
            candidates = AvailabilityService.get_candidates(
                db, business, service, employee_id if employee_id is not None else original.employee_id
            )

            def make_booking():
                metadata = dict(original.booking_metadata or {})
                metadata["rescheduled_from"] = str(original.id)
                return Booking(
                    business_id=business.id,
                    service_id=service.id,
                    customer_id=original.customer_id,
                    status=original.status,
                    notes=original.notes,
                    booking_metadata=metadata,
                )

            replacement = BookingService._reserve_first_free(
                db, business, service, candidates, start, make_booking, now,
                exclude_booking_id=original.id
            )

            original.status = BookingStatus.CANCELLED
            original.cancelled_at = now
            original.cancellation_reason = "Rescheduled"

            db.commit()
            db.refresh(replacement)
        except BookingEngineError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, "reschedule booking")

        logger.info(
            f"Rescheduled booking {booking_id} -> {replacement.id} at {replacement.start_time.isoformat()}",
            extra={"business_id": str(replacement.business_id)}
        )

        BookingService._publish(
            publisher, replacement, NotificationEventType.BOOKING_RESCHEDULED,
            previous_booking_id=str(booking_id)
        )
        return replacement

    # ------------------------------------------------------------------ reads

    @staticmethod
    def get_booking(db: Session, business_id, booking_id) -> Booking:
        assert_business_scope(business_id)
        booking_uuid = coerce_uuid(booking_id)
        booking = None
        if booking_uuid:
            booking = db.query(Booking).filter(
                Booking.id == booking_uuid,
                Booking.business_id == coerce_uuid(business_id)
            ).first()
        if not booking:
            raise NotFoundError("Booking not found.", details={"booking_id": str(booking_id)})
        return booking

    @staticmethod
    def list_bookings(
            db: Session,
            business_id,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
            employee_id=None,
            statuses: Optional[Iterable[Union[str, BookingStatus]]] = None
    ) -> List[Booking]:
        """Bookings of a business ordered by start; the range keeps overlapping ones"""
        assert_business_scope(business_id)
        query = db.query(Booking).filter(Booking.business_id == coerce_uuid(business_id))

        if start is not None:
            query = query.filter(Booking.end_time > ensure_utc(start))
        if end is not None:
            query = query.filter(Booking.start_time < ensure_utc(end))
        if employee_id is not None:
            query = query.filter(Booking.employee_id == coerce_uuid(employee_id))
        if statuses:
            try:
                wanted = [BookingStatus(s) for s in statuses]
            except ValueError:
                raise ValidationError("Unknown booking status filter.", details={"statuses": [str(s) for s in statuses]})
            query = query.filter(Booking.status.in_(wanted))

        return query.order_by(Booking.start_time).all()
