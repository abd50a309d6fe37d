"""
Trace ids for requests and background sweeps.

Inbound requests may carry a W3C ``traceparent`` header
(``00-{trace id}-{parent span id}-{flags}``); its trace id is continued so
the order engine's log lines join the caller's trace. Everything else starts
a fresh trace.
"""

import re
import secrets
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

TRACEPARENT_PATTERN = re.compile(
    r"^00-(?P<trace_id>[0-9a-f]{32})-(?P<parent_span_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})$"
)

_current_trace: ContextVar[Optional["TraceContext"]] = ContextVar(
    "order_engine_trace", default=None
)


def _new_span_id() -> str:
    return secrets.token_hex(8)


@dataclass(frozen=True)
class TraceContext:
    trace_id: str
    span_id: str = field(default_factory=_new_span_id)
    parent_span_id: Optional[str] = None
    sampled: bool = True

    @classmethod
    def start(cls) -> "TraceContext":
        return cls(trace_id=secrets.token_hex(16))

    @classmethod
    def from_traceparent(cls, header_value: str) -> Optional["TraceContext"]:
        """Continue an upstream trace, or None if the header is malformed."""
        match = TRACEPARENT_PATTERN.match(header_value.strip().lower())
        if not match:
            return None
        trace_id = match["trace_id"]
        parent_span_id = match["parent_span_id"]
        # All-zero ids are invalid per W3C
        if int(trace_id, 16) == 0 or int(parent_span_id, 16) == 0:
            return None
        return cls(
            trace_id=trace_id,
            parent_span_id=parent_span_id,
            sampled=bool(int(match["flags"], 16) & 0x01),
        )

    @property
    def traceparent(self) -> str:
        return f"00-{self.trace_id}-{self.span_id}-{'01' if self.sampled else '00'}"

    def log_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"trace.id": self.trace_id, "span.id": self.span_id}
        if self.parent_span_id:
            fields["parent_span_id"] = self.parent_span_id
        return fields


def current_trace() -> Optional[TraceContext]:
    return _current_trace.get()


@contextmanager
def trace_scope(context: TraceContext, **log_fields: Any) -> Iterator[TraceContext]:
    """
    Make ``context`` the current trace and bind its ids (plus ``log_fields``)
    to every structlog line written inside the block.
    """
    token = _current_trace.set(context)
    try:
        with structlog.contextvars.bound_contextvars(
            **context.log_fields(), **log_fields
        ):
            yield context
    finally:
        _current_trace.reset(token)
