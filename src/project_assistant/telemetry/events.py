"""Semantic event constants for structured logging.

All log events should use these constants rather than magic strings to ensure
consistency and enable reliable querying and analysis.
"""

# Request lifecycle
REQUEST_RECEIVED = "request_received"
REQUEST_REJECTED = "request_rejected"
REPLY_READY = "reply_ready"
REQUEST_TIMING = "request_timing"
ORCHESTRATOR_FATAL_ERROR = "orchestrator_fatal_error"
TOOL_LOOP_EXHAUSTED = "tool_loop_exhausted"

# Routing
ROUTING_DECISION = "routing_decision"
LOCAL_ANSWER_SERVED = "local_answer_served"

# Model provider
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"
MODEL_CALL_RETRY = "model_call_retry"
MODEL_STREAM_STARTED = "model_stream_started"
MODEL_STREAM_COMPLETED = "model_stream_completed"

# Tool execution
TOOL_CALL_STARTED = "tool_call_started"
TOOL_CALL_COMPLETED = "tool_call_completed"
TOOL_CALL_FAILED = "tool_call_failed"
TOOL_CALL_RETRY = "tool_call_retry"
TOOL_CACHE_HIT = "tool_cache_hit"
TOOL_CACHE_MISS = "tool_cache_miss"
TOOL_CACHE_INVALIDATED = "tool_cache_invalidated"

# Dispatch
DISPATCH_STARTED = "dispatch_started"
DISPATCH_COMPLETED = "dispatch_completed"
DISPATCH_CEILING_REACHED = "dispatch_ceiling_reached"

# Governance
POLICY_VIOLATION = "policy_violation"
RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

# Action confirmation
ACTION_PREVIEW_ISSUED = "action_preview_issued"
ACTION_NOOP = "action_noop"
ACTION_CONFIRMED = "action_confirmed"
ACTION_REJECTED = "action_rejected"
ACTION_EXECUTED = "action_executed"
ACTION_FAILED = "action_failed"

# Data provider
DATA_PROVIDER_QUERY = "data_provider_query"
DATA_PROVIDER_ERROR = "data_provider_error"

# Usage accounting
USAGE_RECORDED = "usage_recorded"
USAGE_RESET = "usage_reset"

# Service
SERVICE_STARTING = "service_starting"
SERVICE_READY = "service_ready"
SERVICE_STOPPED = "service_stopped"
