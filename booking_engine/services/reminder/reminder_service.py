# booking_engine/services/reminder/reminder_service.py
"""
Booking reminders.

Each horizon owns a boolean claim flag on the booking. A run claims due
bookings with a conditional UPDATE and commits before sending anything, so
concurrent or repeated runs never remind the same booking twice.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import ValidationError, translate_db_error
from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.schemas.notification_events import NotificationEventType
from booking_engine.services.notification.notification_service import (
    NotificationPublisher, build_booking_event
)
from booking_engine.utils.timezone_utils import ensure_utc, is_valid_timezone

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass(frozen=True)
class ReminderHorizon:
    """
    Bookings starting in [now + window_start, now + window_end) are due.

    The window must be at least as wide as the beat period of the job that
    sweeps it, otherwise start times between two sweeps are never claimed.
    """
    name: str
    window_start: timedelta
    window_end: timedelta
    flag: str
    event_type: NotificationEventType


REMINDER_HORIZONS: Dict[str, ReminderHorizon] = {
    "24h": ReminderHorizon(
        name="24h",
        window_start=timedelta(hours=23),
        window_end=timedelta(hours=25),
        flag="reminder_sent_24h",
        event_type=NotificationEventType.BOOKING_REMINDER_24H,
    ),
    "1h": ReminderHorizon(
        name="1h",
        window_start=timedelta(minutes=50),
        window_end=timedelta(minutes=65),
        flag="reminder_sent_1h",
        event_type=NotificationEventType.BOOKING_REMINDER_1H,
    ),
}


def get_horizon(name: str) -> ReminderHorizon:
    horizon = REMINDER_HORIZONS.get(name)
    if horizon is None:
        raise ValidationError(
            f"Unknown reminder horizon '{name}'.",
            details={"horizon": name, "known": sorted(REMINDER_HORIZONS)}
        )
    return horizon


class ReminderService:
    """Claims due bookings and hands reminder events to the publisher"""

    @staticmethod
    def claim_batch(
            db: Session,
            horizon: str,
            now: Optional[datetime] = None,
            limit: Optional[int] = None
    ) -> List[Booking]:
        """
        Atomically flag due confirmed bookings for a horizon and return them.

        Only rows whose flag flipped false -> true in this call are
        returned; the claim is committed before the caller sends anything.
        """
        window = get_horizon(horizon)
        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        limit = limit or settings.REMINDER_BATCH_SIZE
        flag = getattr(Booking, window.flag)
        due = (
            Booking.status == BookingStatus.CONFIRMED,
            Booking.start_time >= now + window.window_start,
            Booking.start_time < now + window.window_end,
            flag.is_(False),
        )

        try:
            candidate_ids = [
                row[0] for row in db.query(Booking.id).filter(*due)
                .order_by(Booking.start_time).limit(limit).all()
            ]

            claimed_ids = []
            if candidate_ids:
                if db.get_bind().dialect.update_returning:
                    result = db.execute(
                        update(Booking)
                        .where(Booking.id.in_(candidate_ids), *due)
                        .values({window.flag: True})
                        .returning(Booking.id),
                        execution_options={"synchronize_session": False},
                    )
                    claimed_ids = [row[0] for row in result]
                else:
                    for booking_id in candidate_ids:
                        result = db.execute(
                            update(Booking)
                            .where(Booking.id == booking_id, *due)
                            .values({window.flag: True}),
                            execution_options={"synchronize_session": False},
                        )
                        if result.rowcount == 1:
                            claimed_ids.append(booking_id)

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise translate_db_error(e, f"claim {window.name} reminders")

        if not claimed_ids:
            return []

        logger.info(
            f"Claimed {len(claimed_ids)} of {len(candidate_ids)} due bookings for {window.name} reminders",
            extra={"horizon": window.name}
        )
        return db.query(Booking).filter(Booking.id.in_(claimed_ids)).order_by(Booking.start_time).all()

    @staticmethod
    def run(
            db: Session,
            horizon: str,
            publisher: NotificationPublisher,
            now: Optional[datetime] = None
    ) -> dict:
        """
        Claim due bookings, then publish one reminder each.

        A failed send is logged and counted; the claim stays in place and
        the rest of the batch is still sent.
        """
        window = get_horizon(horizon)
        logger.info(f"Running {window.name} booking reminder job...", extra={"horizon": window.name})

        claimed = ReminderService.claim_batch(db, window.name, now=now)

        sent = 0
        failed = 0
        for booking in claimed:
            tz_name = booking.business.timezone if booking.business else None
            if not is_valid_timezone(tz_name):
                logger.warning(
                    f"Skipping {window.name} reminder for booking {booking.id}: invalid business timezone {tz_name!r}"
                )
                failed += 1
                continue

            try:
                publisher.publish(build_booking_event(booking, window.event_type))
                sent += 1
            except Exception as e:
                failed += 1
                logger.error(f"Failed to send {window.name} reminder for booking {booking.id}: {e}")

        logger.info(
            f"{window.name} booking reminder job finished. Claimed {len(claimed)}, sent {sent}, failed {failed}.",
            extra={"horizon": window.name}
        )
        return {
            "status": "success",
            "horizon": window.name,
            "claimed": len(claimed),
            "sent": sent,
            "failed": failed,
        }
