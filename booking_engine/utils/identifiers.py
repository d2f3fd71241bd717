# booking_engine/utils/identifiers.py
import uuid
from typing import Optional


def coerce_uuid(value) -> Optional[uuid.UUID]:
    """UUID for a str/UUID id, or None when the value is not a valid id"""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None
