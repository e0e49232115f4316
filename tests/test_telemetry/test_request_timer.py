"""Tests for RequestTimer inline span-based timing."""

import time

import pytest

from project_assistant.telemetry.request_timer import RequestTimer


class TestRequestTimer:
    """Tests for RequestTimer."""

    def test_span_records_duration_and_metadata(self) -> None:
        timer = RequestTimer(trace_id="test-trace")

        with timer.span("dispatch", tool_count=2) as extra:
            time.sleep(0.01)
            extra["timed_out"] = 0

        span = timer.get_span("dispatch")
        assert span is not None
        assert span.duration_ms >= 10
        assert span.metadata == {"tool_count": 2, "timed_out": 0}

    def test_span_recorded_when_block_raises(self) -> None:
        timer = RequestTimer(trace_id="test-trace")

        with pytest.raises(RuntimeError):
            with timer.span("model_call"):
                raise RuntimeError("boom")

        assert timer.get_span("model_call") is not None

    def test_repeated_spans_return_latest(self) -> None:
        timer = RequestTimer(trace_id="test-trace")
        with timer.span("model_call", iteration=1):
            pass
        with timer.span("model_call", iteration=2):
            pass

        assert timer.get_span("model_call").metadata == {"iteration": 2}
        assert timer.get_span("missing") is None

    def test_phase_totals_sum_repeated_spans(self) -> None:
        timer = RequestTimer(trace_id="test-trace")
        for iteration in (1, 2):
            with timer.span("model_call", iteration=iteration):
                time.sleep(0.005)
        with timer.span("dispatch", tool_count=1):
            pass

        totals = timer.phase_totals()

        assert list(totals) == ["model_call", "dispatch"]
        assert totals["model_call"] >= 10

    def test_summary_is_log_ready(self) -> None:
        timer = RequestTimer(trace_id="abc")
        with timer.span("admission"):
            pass

        summary = timer.summary()

        assert summary["trace_id"] == "abc"
        assert summary["total_ms"] >= 0
        assert summary["phases"][0]["phase"] == "admission"
        assert summary["phase_totals_ms"].keys() == {"admission"}

    def test_summary_phases_carry_metadata(self) -> None:
        timer = RequestTimer(trace_id="abc")
        with timer.span("routing") as details:
            details["path"] = "local"

        phase = timer.summary()["phases"][0]

        assert phase["phase"] == "routing"
        assert phase["path"] == "local"
