"""Tool execution layer: registry, validation, cache, executor and dispatch.

This module provides:
- Tool registry for tool discovery and registration
- ToolExecutor with permission checks, caching and retries
- DispatchScheduler for concurrent fan-out of a turn's tool calls
- Read-only project query tools
"""

from project_assistant.tools.cache import CacheEntry, ToolResultCache, canonical_hash
from project_assistant.tools.dispatch import DispatchScheduler
from project_assistant.tools.executor import ToolExecutor, classify_exception
from project_assistant.tools.queries import ProjectQueries, query_tool_specs, register_query_tools
from project_assistant.tools.registry import ActionHandler, ReadHandler, ToolRegistry
from project_assistant.tools.types import (
    AmbiguousMatchError,
    NotFoundError,
    PermissionDeniedError,
    ToolError,
    ToolErrorInfo,
    ToolErrorKind,
    ToolInvocation,
    ToolParameter,
    ToolResult,
    ToolSpec,
    ToolTimeoutError,
    ToolValidationError,
    UnknownToolError,
    UpstreamError,
)
from project_assistant.tools.validation import validate_arguments

__all__ = [
    # Core exports
    "ToolRegistry",
    "ToolExecutor",
    "DispatchScheduler",
    "ToolResultCache",
    "CacheEntry",
    "canonical_hash",
    "classify_exception",
    "validate_arguments",
    "ReadHandler",
    "ActionHandler",
    # Types
    "ToolSpec",
    "ToolParameter",
    "ToolInvocation",
    "ToolResult",
    "ToolErrorInfo",
    "ToolErrorKind",
    # Errors
    "ToolError",
    "UnknownToolError",
    "PermissionDeniedError",
    "ToolValidationError",
    "AmbiguousMatchError",
    "NotFoundError",
    "ToolTimeoutError",
    "UpstreamError",
    # Read tools
    "ProjectQueries",
    "query_tool_specs",
    "register_query_tools",
]
