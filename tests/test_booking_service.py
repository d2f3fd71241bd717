"""Tests for booking creation, the status state machine and rescheduling."""

import uuid

import pytest

from booking_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from booking_engine.models import Booking, BookingStatus
from booking_engine.services.booking.booking_service import BookingService

from conftest import EARLY_NOW, FailingPublisher, utc


def payload(service, customer, start, employee=None, **extra):
    data = {
        "service_id": str(service.id),
        "customer_id": str(customer.id),
        "start_time": start,
        **extra,
    }
    if employee is not None:
        data["employee_id"] = str(employee.id)
    return data


class TestCreateBooking:

    def test_creates_pending_booking(self, db, salon, publisher):
        business, service, employee, customer = salon
        booking = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 10), employee, notes="First visit"),
            publisher=publisher, now=EARLY_NOW
        )

        assert booking.status == BookingStatus.PENDING
        assert booking.employee_id == employee.id
        assert booking.start_time == utc(2030, 1, 7, 10)
        assert booking.end_time == utc(2030, 1, 7, 11)
        assert booking.notes == "First visit"
        assert publisher.events == []

    def test_auto_confirm_publishes_confirmation(self, db, factory, publisher):
        business = factory.business("America/New_York", auto_confirm=True)
        service = factory.service(business)
        employee = factory.employee(business, services=[service])
        customer = factory.customer(business)
        factory.hours(business)

        booking = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 15)), publisher=publisher, now=EARLY_NOW
        )

        assert booking.status == BookingStatus.CONFIRMED
        assert publisher.types() == ["booking_confirmed"]
        event = publisher.events[0]
        assert event.booking_id == str(booking.id)
        assert event.employee_name == employee.name
        assert event.customer.email == customer.email
        assert event.business_timezone == "America/New_York"
        assert event.start_time == utc(2030, 1, 7, 15)

    def test_taken_slot_is_a_conflict(self, db, salon, factory):
        """A confirmed 10:00-11:00 booking rejects a 10:30 request."""
        business, service, employee, customer = salon
        existing = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))

        with pytest.raises(ConflictError) as exc_info:
            BookingService.create_booking(
                db, business.id, payload(service, customer, utc(2030, 1, 7, 10, 30), employee), now=EARLY_NOW
            )

        assert exc_info.value.message == "Selected slot is no longer available."
        assert db.query(Booking).count() == 1
        db.refresh(existing)
        assert existing.status == BookingStatus.CONFIRMED
        assert existing.start_time == utc(2030, 1, 7, 10)

    def test_without_employee_picks_first_free_candidate(self, db, salon, factory, publisher):
        business, service, alice, customer = salon
        bob = factory.employee(business, "Bob", services=[service])
        factory.booking(business, service, alice, customer, utc(2030, 1, 7, 10))

        booking = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 10)), publisher=publisher, now=EARLY_NOW
        )
        assert booking.employee_id == bob.id

    def test_without_employee_all_taken_is_a_conflict(self, db, salon, factory):
        business, service, alice, customer = salon
        factory.booking(business, service, alice, customer, utc(2030, 1, 7, 10))

        with pytest.raises(ConflictError):
            BookingService.create_booking(db, business.id, payload(service, customer, utc(2030, 1, 7, 10)), now=EARLY_NOW)

    def test_outside_working_hours_is_a_conflict(self, db, salon):
        business, service, employee, customer = salon
        with pytest.raises(ConflictError):
            BookingService.create_booking(
                db, business.id, payload(service, customer, utc(2030, 1, 7, 16, 30), employee), now=EARLY_NOW
            )

    def test_buffers_keep_padded_bookings_disjoint(self, db, factory):
        business = factory.business()
        service = factory.service(business, duration=60, before=15, after=15)
        employee = factory.employee(business, services=[service])
        customer = factory.customer(business)
        factory.hours(business)

        BookingService.create_booking(db, business.id, payload(service, customer, utc(2030, 1, 7, 10)), now=EARLY_NOW)
        with pytest.raises(ConflictError):
            BookingService.create_booking(db, business.id, payload(service, customer, utc(2030, 1, 7, 11)), now=EARLY_NOW)

        booking = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 11, 30)), now=EARLY_NOW
        )
        assert booking.employee_id == employee.id

    def test_past_start_is_a_conflict(self, db, salon):
        business, service, employee, customer = salon
        with pytest.raises(ConflictError):
            BookingService.create_booking(
                db, business.id, payload(service, customer, utc(2030, 1, 7, 10), employee), now=utc(2030, 1, 7, 12)
            )

    def test_unknown_references(self, db, salon):
        business, service, employee, customer = salon
        with pytest.raises(NotFoundError):
            BookingService.create_booking(db, business.id, {
                "service_id": str(uuid.uuid4()), "customer_id": str(customer.id), "start_time": utc(2030, 1, 7, 10)
            }, now=EARLY_NOW)
        with pytest.raises(NotFoundError):
            BookingService.create_booking(db, business.id, {
                "service_id": str(service.id), "customer_id": str(uuid.uuid4()), "start_time": utc(2030, 1, 7, 10)
            }, now=EARLY_NOW)
        with pytest.raises(NotFoundError):
            BookingService.create_booking(db, business.id, {
                "service_id": str(service.id), "customer_id": str(customer.id),
                "employee_id": str(uuid.uuid4()), "start_time": utc(2030, 1, 7, 10)
            }, now=EARLY_NOW)

    def test_customer_of_other_business_is_not_found(self, db, salon, factory):
        business, service, employee, _ = salon
        stranger = factory.customer(factory.business(), "Stranger")
        with pytest.raises(NotFoundError):
            BookingService.create_booking(
                db, business.id, payload(service, stranger, utc(2030, 1, 7, 10), employee), now=EARLY_NOW
            )

    def test_malformed_payload(self, db, salon):
        business, _, _, _ = salon
        with pytest.raises(ValidationError):
            BookingService.create_booking(db, business.id, {"service_id": "x"}, now=EARLY_NOW)

    def test_publish_failure_keeps_booking(self, db, factory):
        business = factory.business(auto_confirm=True)
        service = factory.service(business)
        factory.employee(business, services=[service])
        customer = factory.customer(business)
        factory.hours(business)

        booking = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 10)), publisher=FailingPublisher(), now=EARLY_NOW
        )
        assert db.query(Booking).filter(Booking.id == booking.id).count() == 1


class TestStatusTransitions:

    @pytest.fixture
    def pending(self, db, salon):
        business, service, employee, customer = salon
        return BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 10), employee), now=EARLY_NOW
        )

    def test_confirm_publishes_event(self, db, salon, pending, publisher):
        business = salon[0]
        booking = BookingService.confirm_booking(db, business.id, pending.id, publisher=publisher)
        assert booking.status == BookingStatus.CONFIRMED
        assert publisher.types() == ["booking_confirmed"]

    def test_cancel_records_reason_and_frees_slot(self, db, salon, pending, publisher):
        business, service, employee, customer = salon
        booking = BookingService.cancel_booking(db, business.id, pending.id, reason="Sick", publisher=publisher)

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "Sick"
        assert booking.cancelled_at is not None
        assert publisher.types() == ["booking_cancelled"]

        again = BookingService.create_booking(
            db, business.id, payload(service, customer, utc(2030, 1, 7, 10), employee), now=EARLY_NOW
        )
        assert again.id != booking.id

    def test_reject_pending(self, db, salon, pending, publisher):
        booking = BookingService.reject_booking(db, salon[0].id, pending.id, publisher=publisher)
        assert booking.status == BookingStatus.REJECTED
        assert publisher.events == []

    def test_complete_and_no_show_need_confirmation(self, db, salon, pending, publisher):
        business = salon[0]
        with pytest.raises(ValidationError):
            BookingService.complete_booking(db, business.id, pending.id, publisher=publisher)
        with pytest.raises(ValidationError):
            BookingService.mark_no_show(db, business.id, pending.id, publisher=publisher)

        BookingService.confirm_booking(db, business.id, pending.id, publisher=publisher)
        assert BookingService.complete_booking(db, business.id, pending.id, publisher=publisher).status == \
            BookingStatus.COMPLETED

    def test_terminal_states_are_final(self, db, salon, pending, publisher):
        business = salon[0]
        BookingService.cancel_booking(db, business.id, pending.id, publisher=publisher)
        for status in ("pending", "confirmed", "completed", "rejected", "no_show"):
            with pytest.raises(ValidationError):
                BookingService.update_booking_status(db, business.id, pending.id, status, publisher=publisher)
        assert BookingService.get_booking(db, business.id, pending.id).status == BookingStatus.CANCELLED

    def test_unknown_status_value(self, db, salon, pending):
        with pytest.raises(ValidationError):
            BookingService.update_booking_status(db, salon[0].id, pending.id, "archived")

    def test_unknown_booking(self, db, salon):
        with pytest.raises(NotFoundError):
            BookingService.confirm_booking(db, salon[0].id, uuid.uuid4())


class TestReschedule:

    def test_cancels_original_and_links_replacement(self, db, salon, factory, publisher):
        business, service, employee, customer = salon
        original = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))

        replacement = BookingService.reschedule_booking(
            db, business.id, original.id, utc(2030, 1, 7, 14), publisher=publisher, now=EARLY_NOW
        )

        db.refresh(original)
        assert original.status == BookingStatus.CANCELLED
        assert original.start_time == utc(2030, 1, 7, 10)
        assert replacement.status == BookingStatus.CONFIRMED
        assert replacement.start_time == utc(2030, 1, 7, 14)
        assert replacement.customer_id == customer.id
        assert replacement.booking_metadata["rescheduled_from"] == str(original.id)
        assert publisher.types() == ["booking_rescheduled"]
        assert publisher.events[0].previous_booking_id == str(original.id)

    def test_can_move_within_its_own_slot(self, db, salon, factory, publisher):
        business, service, employee, customer = salon
        original = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))

        replacement = BookingService.reschedule_booking(
            db, business.id, original.id, utc(2030, 1, 7, 10, 30), publisher=publisher, now=EARLY_NOW
        )
        assert replacement.start_time == utc(2030, 1, 7, 10, 30)

    def test_conflict_leaves_original_untouched(self, db, salon, factory, publisher):
        business, service, employee, customer = salon
        original = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))
        factory.booking(business, service, employee, customer, utc(2030, 1, 7, 14))

        with pytest.raises(ConflictError):
            BookingService.reschedule_booking(
                db, business.id, original.id, utc(2030, 1, 7, 14), publisher=publisher, now=EARLY_NOW
            )

        db.refresh(original)
        assert original.status == BookingStatus.CONFIRMED
        assert db.query(Booking).count() == 2
        assert publisher.events == []

    def test_terminal_booking_cannot_move(self, db, salon, factory):
        business, service, employee, customer = salon
        done = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10), status=BookingStatus.COMPLETED)
        with pytest.raises(ValidationError):
            BookingService.reschedule_booking(db, business.id, done.id, utc(2030, 1, 7, 14), now=EARLY_NOW)


class TestQueries:

    def test_list_filters_and_orders(self, db, salon, factory):
        business, service, employee, customer = salon
        late = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 15))
        early = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 9))
        cancelled = factory.booking(
            business, service, employee, customer, utc(2030, 1, 7, 12), status=BookingStatus.CANCELLED
        )

        assert [b.id for b in BookingService.list_bookings(db, business.id)] == [early.id, cancelled.id, late.id]
        assert [b.id for b in BookingService.list_bookings(db, business.id, statuses=["confirmed"])] == [early.id, late.id]
        assert [b.id for b in BookingService.list_bookings(
            db, business.id, start=utc(2030, 1, 7, 11), end=utc(2030, 1, 7, 13)
        )] == [cancelled.id]

    def test_list_rejects_unknown_status(self, db, salon):
        with pytest.raises(ValidationError):
            BookingService.list_bookings(db, salon[0].id, statuses=["lost"])

    def test_get_booking_from_other_business(self, db, salon, factory):
        business, service, employee, customer = salon
        booking = factory.booking(business, service, employee, customer, utc(2030, 1, 7, 9))
        with pytest.raises(NotFoundError):
            BookingService.get_booking(db, factory.business().id, booking.id)


class TestServiceTiming:

    def test_timing_is_frozen_once_booked(self, db, salon, factory):
        business, service, employee, customer = salon
        factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))

        service.duration = 90
        with pytest.raises(ValidationError):
            db.commit()
        db.rollback()

        service.buffer_after_minutes = 15
        with pytest.raises(ValidationError):
            db.commit()
        db.rollback()

        db.expire_all()
        assert service.duration == 60
        assert service.buffer_after_minutes == 0

    def test_unbooked_service_and_other_fields_can_change(self, db, salon, factory):
        business, service, employee, customer = salon
        service.duration = 45
        db.commit()

        factory.booking(business, service, employee, customer, utc(2030, 1, 7, 10))
        service.name = "Long haircut"
        db.commit()

        db.expire_all()
        assert service.duration == 45
        assert service.name == "Long haircut"
