# FILE: portrait_backend/services/correlation.py
"""
Correlation ID utilities (request-scoped via contextvars)
"""
import uuid
from contextvars import ContextVar
from typing import Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    """Generate unique correlation ID"""
    return str(uuid.uuid4())


def set_correlation_id(value: Optional[str] = None) -> str:
    """Bind a correlation ID to the current request context"""
    cid = value.strip() if value and value.strip() else generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation ID, creating one if the context has none"""
    cid = _correlation_id.get()
    if cid is None:
        cid = set_correlation_id()
    return cid
