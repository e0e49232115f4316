"""Per-phase latency for one chat turn.

The orchestrator wraps admission, routing, every model call and every tool
dispatch in a span. A standard-path turn repeats ``model_call`` and
``dispatch`` once per loop iteration, so the summary reports both the
individual spans and the total time spent per phase.

Usage:
    timer = RequestTimer(trace_id="abc-123")

    with timer.span("model_call", tier="standard", iteration=1):
        response = await provider.respond(...)

    log.info(REQUEST_TIMING, **timer.summary())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator


@dataclass
class TimingSpan:
    """One timed phase.

    Attributes:
        name: Phase name ("routing", "model_call", "dispatch", ...).
        offset_ms: Start, relative to the beginning of the turn.
        duration_ms: Wall-clock duration.
        metadata: Tier, iteration, tool count and similar details.
    """

    name: str
    offset_ms: float
    duration_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)


def _ms(delta_ns: int) -> float:
    return round(delta_ns / 1_000_000, 2)


class RequestTimer:
    """Collects spans on a monotonic clock for a single turn."""

    def __init__(self, trace_id: str) -> None:  # noqa: D107
        self.trace_id = trace_id
        self._start_ns = time.monotonic_ns()
        self._spans: list[TimingSpan] = []

    @contextmanager
    def span(self, name: str, **metadata: Any) -> Generator[dict[str, Any], None, None]:
        """Time the enclosed block, recording it even when the block raises.

        Yields:
            The span's metadata dict, for values only known inside the block.
        """
        started = time.monotonic_ns()
        details: dict[str, Any] = dict(metadata)
        try:
            yield details
        finally:
            self._spans.append(
                TimingSpan(
                    name=name,
                    offset_ms=_ms(started - self._start_ns),
                    duration_ms=_ms(time.monotonic_ns() - started),
                    metadata=details,
                )
            )

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the turn started."""
        return _ms(time.monotonic_ns() - self._start_ns)

    def get_span(self, name: str) -> TimingSpan | None:
        """Most recent completed span called ``name``."""
        return next((s for s in reversed(self._spans) if s.name == name), None)

    def phase_totals(self) -> dict[str, float]:
        """Summed duration per phase name, in first-seen order."""
        totals: dict[str, float] = defaultdict(float)
        for span in self._spans:
            totals[span.name] = round(totals[span.name] + span.duration_ms, 2)
        return dict(totals)

    def summary(self) -> dict[str, Any]:
        """Fields for the REQUEST_TIMING log event."""
        spans = sorted(self._spans, key=lambda s: s.offset_ms)
        return {
            "trace_id": self.trace_id,
            "total_ms": self.elapsed_ms,
            "phase_totals_ms": self.phase_totals(),
            "phases": [
                {"phase": s.name, "offset_ms": s.offset_ms, "duration_ms": s.duration_ms, **s.metadata}
                for s in spans
            ],
        }
