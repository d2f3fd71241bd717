# booking_engine/core/exceptions.py
"""
Error taxonomy shared by every service.

Each error carries the HTTP-equivalent status code so the surrounding API
layer can map it without knowing the individual failure.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)


class BookingEngineError(Exception):
    """Base class for all booking engine errors"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "error",
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BookingEngineError):
    """Malformed input, rejected before any write"""
    status_code = 400


class NotFoundError(BookingEngineError):
    """Unknown record within the requesting business"""
    status_code = 404


class ConflictError(BookingEngineError):
    """Slot taken, overlapping override"""
    status_code = 409


class TransientError(BookingEngineError):
    """Timeout or serialization failure; safe to retry"""
    status_code = 503


class InternalError(BookingEngineError):
    """Unexpected storage failure"""
    status_code = 500


# PostgreSQL SQLSTATE codes that are worth a retry
_TRANSIENT_PGCODES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
    "57014",  # query_canceled (statement_timeout)
}

_TRANSIENT_MESSAGES = (
    "database is locked",
    "could not serialize",
    "deadlock detected",
    "statement timeout",
    "lock timeout",
)


def is_transient_db_error(exc: BaseException) -> bool:
    """True if a DBAPI error is a timeout, lock wait or serialization failure"""
    if not isinstance(exc, DBAPIError):
        return False

    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _TRANSIENT_PGCODES:
        return True

    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _TRANSIENT_MESSAGES)


def translate_db_error(exc: BaseException, action: str) -> BookingEngineError:
    """Map a storage failure onto the error taxonomy"""
    if is_transient_db_error(exc):
        logger.warning(f"Transient storage failure while trying to {action}: {exc}")
        return TransientError(
            f"Temporary storage failure while trying to {action}. Please retry.",
            details={"action": action},
        )

    logger.error(f"Storage failure while trying to {action}: {exc}")
    return InternalError(f"Failed to {action}.", details={"action": action})
