"""Trace context management for correlating one analysis or refresh run."""

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

# Context variable for storing the current trace ID
_trace_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "trace_id", default=None
)


def create_trace() -> str:
    """
    Generate a new unique trace ID and set it in the current context.

    Returns:
        A unique trace ID string (UUID4 format)
    """
    trace_id = str(uuid.uuid4())
    _trace_id_context.set(trace_id)
    return trace_id


def get_current_trace() -> Optional[str]:
    """Get the current trace ID, or None outside a traced run."""
    return _trace_id_context.get()


def clear_trace() -> None:
    """Clear the trace ID from the current context."""
    _trace_id_context.set(None)


@contextmanager
def traced(trace_id: str | None = None) -> Iterator[str]:
    """
    Run a block under a trace ID, restoring the previous one afterwards.

    Reuses *trace_id* when given (e.g. an incoming request header).
    """
    token = _trace_id_context.set(trace_id or str(uuid.uuid4()))
    try:
        yield _trace_id_context.get()
    finally:
        _trace_id_context.reset(token)
