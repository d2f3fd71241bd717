# booking_engine/utils/timezone_utils.py
"""
Timezone conversion between canonical UTC instants and a business's local
wall-clock, using IANA identifiers via pytz.
"""
import logging
from datetime import datetime, date, time, timedelta
from typing import Tuple, Union

import pytz

from booking_engine.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

DateLike = Union[date, str]
TimeLike = Union[time, str]


def is_valid_timezone(tz_name: str) -> bool:
    """True if tz_name is a known IANA timezone identifier"""
    if not tz_name or not isinstance(tz_name, str):
        return False
    try:
        pytz.timezone(tz_name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def get_timezone(tz_name: str):
    """Return the pytz timezone, raising ValidationError for unknown ids"""
    if not is_valid_timezone(tz_name):
        raise ValidationError(
            f"Invalid timezone '{tz_name}'.",
            details={"timezone": tz_name}
        )
    return pytz.timezone(tz_name)


def ensure_utc(instant: datetime) -> datetime:
    # Naive instants are UTC by convention
    if instant.tzinfo is None:
        return pytz.UTC.localize(instant)
    return instant.astimezone(pytz.UTC)


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{value}'. Expected YYYY-MM-DD.")


def parse_time(value: TimeLike) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid time '{value}'. Expected HH:MM.")


def _localize_candidates(tz, naive: datetime):
    """Both possible localizations of an ambiguous wall time, earliest first"""
    first = tz.localize(naive, is_dst=True)
    second = tz.localize(naive, is_dst=False)
    return sorted({first, second}, key=lambda d: d.astimezone(pytz.UTC))


def to_business_local(instant_utc: datetime, tz_name: str) -> datetime:
    """
    Express a UTC instant as an aware wall-clock datetime in tz_name.

    For the repeated hour at the end of DST the second occurrence is
    returned with fold=1, so to_utc() can map it back to the same instant.
    """
    tz = get_timezone(tz_name)
    local = ensure_utc(instant_utc).astimezone(tz)

    naive = local.replace(tzinfo=None)
    try:
        tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        candidates = _localize_candidates(tz, naive)
        if local.astimezone(pytz.UTC) == candidates[-1].astimezone(pytz.UTC):
            return local.replace(fold=1)
    except pytz.NonExistentTimeError:
        pass
    return local


def to_utc(local_date: DateLike, local_time: TimeLike, tz_name: str) -> datetime:
    """
    Interpret a local date + wall-clock time in tz_name and return the UTC instant.

    Ambiguous wall times resolve to the earlier instant unless the time has
    fold=1. Wall times inside a spring-forward gap are shifted forward by
    the size of the gap.
    """
    tz = get_timezone(tz_name)
    d = parse_date(local_date)
    t = parse_time(local_time)
    naive = datetime.combine(d, t.replace(tzinfo=None, fold=0))

    try:
        localized = tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        candidates = _localize_candidates(tz, naive)
        localized = candidates[-1] if t.fold else candidates[0]
    except pytz.NonExistentTimeError:
        localized = tz.normalize(tz.localize(naive, is_dst=False))

    return localized.astimezone(pytz.UTC)


def format_in_zone(instant: datetime, pattern: str, tz_name: str) -> str:
    """
    Format an instant in tz_name using a strftime pattern.

    Display only: an unknown timezone falls back to the system local zone.
    """
    instant = ensure_utc(instant)
    if not is_valid_timezone(tz_name):
        logger.warning(f"Invalid timezone '{tz_name}' for display formatting, using system time")
        return instant.astimezone().strftime(pattern)
    return instant.astimezone(pytz.timezone(tz_name)).strftime(pattern)


def local_day_bounds(local_date: DateLike, tz_name: str) -> Tuple[datetime, datetime]:
    """UTC instants of local midnight and the following local midnight"""
    d = parse_date(local_date)
    start = to_utc(d, time(0, 0), tz_name)
    end = to_utc(d + timedelta(days=1), time(0, 0), tz_name)
    return start, end


def day_of_week(local_date: DateLike) -> int:
    """Weekday with 0=Sunday ... 6=Saturday"""
    return (parse_date(local_date).weekday() + 1) % 7


def split_local(instant_utc: datetime, tz_name: str) -> Tuple[date, time]:
    """Local (date, time) pair for a UTC instant; time keeps its fold"""
    local = to_business_local(instant_utc, tz_name)
    return local.date(), local.time()
