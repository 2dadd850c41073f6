"""
FILE: src/core/common/log_context.py
Context variables stamped onto every structured log line.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")


@contextmanager
def bound_log_context(
    *,
    correlation_id: str,
    request_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> Iterator[None]:
    """Bind log identifiers for the current context; worker threads need ``copy_context``."""
    tokens = [(correlation_id_var, correlation_id_var.set(correlation_id))]
    if request_id is not None:
        tokens.append((request_id_var, request_id_var.set(request_id)))
    if trace_id is not None:
        tokens.append((trace_id_var, trace_id_var.set(trace_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
