"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for request correlation
- Structured logging via structlog
- RequestTimer for per-phase latency breakdowns
- Semantic event constants
"""

from project_assistant.telemetry.events import (
    ACTION_CONFIRMED,
    ACTION_EXECUTED,
    ACTION_FAILED,
    ACTION_NOOP,
    ACTION_PREVIEW_ISSUED,
    ACTION_REJECTED,
    DISPATCH_CEILING_REACHED,
    DISPATCH_COMPLETED,
    DISPATCH_STARTED,
    LOCAL_ANSWER_SERVED,
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_RETRY,
    MODEL_CALL_STARTED,
    ORCHESTRATOR_FATAL_ERROR,
    POLICY_VIOLATION,
    RATE_LIMIT_EXCEEDED,
    REPLY_READY,
    REQUEST_RECEIVED,
    REQUEST_REJECTED,
    REQUEST_TIMING,
    ROUTING_DECISION,
    TOOL_CACHE_HIT,
    TOOL_CACHE_INVALIDATED,
    TOOL_CACHE_MISS,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_RETRY,
    TOOL_CALL_STARTED,
    TOOL_LOOP_EXHAUSTED,
    USAGE_RECORDED,
)
from project_assistant.telemetry.logger import configure_logging, get_logger, request_log_context
from project_assistant.telemetry.request_timer import RequestTimer, TimingSpan
from project_assistant.telemetry.trace import TraceContext

__all__ = [
    # Core exports
    "TraceContext",
    "RequestTimer",
    "TimingSpan",
    "get_logger",
    "configure_logging",
    "request_log_context",
    # Event constants
    "REQUEST_RECEIVED",
    "REQUEST_REJECTED",
    "REPLY_READY",
    "REQUEST_TIMING",
    "ORCHESTRATOR_FATAL_ERROR",
    "TOOL_LOOP_EXHAUSTED",
    "ROUTING_DECISION",
    "LOCAL_ANSWER_SERVED",
    "MODEL_CALL_STARTED",
    "MODEL_CALL_COMPLETED",
    "MODEL_CALL_ERROR",
    "MODEL_CALL_RETRY",
    "TOOL_CALL_STARTED",
    "TOOL_CALL_COMPLETED",
    "TOOL_CALL_FAILED",
    "TOOL_CALL_RETRY",
    "TOOL_CACHE_HIT",
    "TOOL_CACHE_MISS",
    "TOOL_CACHE_INVALIDATED",
    "DISPATCH_STARTED",
    "DISPATCH_COMPLETED",
    "DISPATCH_CEILING_REACHED",
    "POLICY_VIOLATION",
    "RATE_LIMIT_EXCEEDED",
    "ACTION_PREVIEW_ISSUED",
    "ACTION_NOOP",
    "ACTION_CONFIRMED",
    "ACTION_REJECTED",
    "ACTION_EXECUTED",
    "ACTION_FAILED",
    "USAGE_RECORDED",
]
