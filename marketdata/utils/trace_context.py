"""Trace context management for correlating log entries of one request."""

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

_trace_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "trace_id", default=None
)


def create_trace() -> str:
    """
    Generate a new unique trace ID and set it in the current context.

    Returns:
        A unique trace ID string (UUID4 format)
    """
    trace_id = str(uuid.uuid4())
    set_trace(trace_id)
    return trace_id


def get_current_trace() -> str | None:
    """Get the current trace ID, or None when no trace is active."""
    return _trace_id_context.get()


def set_trace(trace_id: str) -> None:
    """Set the trace ID in the current context."""
    _trace_id_context.set(trace_id)


def clear_trace() -> None:
    """Clear the trace ID from the current context."""
    _trace_id_context.set(None)


@contextmanager
def trace_scope(trace_id: str | None = None) -> Iterator[str]:
    """
    Run a block under a trace ID and restore the previous one afterwards.

    Args:
        trace_id: Trace ID to use; a new one is generated when omitted

    Yields:
        The active trace ID
    """
    active = trace_id or str(uuid.uuid4())
    token = _trace_id_context.set(active)
    try:
        yield active
    finally:
        _trace_id_context.reset(token)
