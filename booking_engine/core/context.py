# booking_engine/core/context.py
"""Request-scoped tenant context propagated to the storage layer"""
import uuid
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Iterator, Optional

from booking_engine.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Identifiers set by the auth/tenant layer for the current request"""
    tenant_id: Optional[str] = None
    business_id: Optional[str] = None
    user_id: Optional[str] = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))


_current_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "booking_engine_request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """Return the active request context, if any"""
    return _current_context.get()


@contextmanager
def request_context(
        tenant_id: Optional[str] = None,
        business_id: Optional[str] = None,
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None
) -> Iterator[RequestContext]:
    """Bind tenant/business/user identifiers for the duration of a block"""
    ctx = RequestContext(
        tenant_id=str(tenant_id) if tenant_id else None,
        business_id=str(business_id) if business_id else None,
        user_id=str(user_id) if user_id else None,
        correlation_id=correlation_id or str(uuid.uuid4()),
    )
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def assert_business_scope(business_id) -> None:
    """
    Refuse to touch a business other than the one the caller is scoped to.

    Without an active context (background jobs, scripts) the explicit
    business id is trusted.
    """
    ctx = get_request_context()
    if ctx is None or ctx.business_id is None:
        return

    if str(business_id) != ctx.business_id:
        logger.warning(
            "Business scope mismatch",
            extra={
                "correlation_id": ctx.correlation_id,
                "requested_business_id": str(business_id),
            }
        )
        raise NotFoundError("Business not found.")


def session_settings() -> dict:
    """Session-scoped settings read by row-level security policies"""
    ctx = get_request_context()
    return {
        "app.current_tenant_id": (ctx.tenant_id if ctx else None) or "",
        "app.current_business_id": (ctx.business_id if ctx else None) or "",
        "app.current_user_id": (ctx.user_id if ctx else None) or "",
    }
