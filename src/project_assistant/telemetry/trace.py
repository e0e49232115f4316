"""Trace ids for correlating one chat turn across components.

The HTTP layer opens a trace per request and returns its id in
``X-Trace-Id``. Model calls and tool invocations open child spans, so one
grep over ``current.jsonl`` reconstructs the whole turn.
"""

import uuid
from dataclasses import dataclass


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TraceContext:
    """Immutable correlation ids passed down the call chain.

    Attributes:
        trace_id: Id shared by every event of one chat turn.
        parent_span_id: Span that spawned the current work, if any.
    """

    trace_id: str
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls) -> "TraceContext":
        """Open a trace for a new chat turn."""
        return cls(trace_id=_new_id())

    def new_span(self) -> tuple["TraceContext", str]:
        """Open a child span (one model call, one tool invocation).

        Returns:
            ``(context for the child's own children, span id)``.
        """
        span_id = _new_id()
        return TraceContext(trace_id=self.trace_id, parent_span_id=span_id), span_id

    def log_fields(self) -> dict[str, str]:
        """Keyword arguments for log calls: ``log.info(EVENT, **ctx.log_fields())``."""
        if self.parent_span_id is None:
            return {"trace_id": self.trace_id}
        return {"trace_id": self.trace_id, "parent_span_id": self.parent_span_id}
