"""Type definitions for the tool execution layer.

This module defines the Pydantic models for tool specs, invocations and
results, plus the ToolError hierarchy handlers raise to signal failures.
"""

import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

CONFIRMED_PARAM = "confirmed"


class ToolErrorKind(str, Enum):
    """Failure classes a ToolResult can carry."""

    UNKNOWN_TOOL = "UnknownTool"
    PERMISSION_DENIED = "PermissionDenied"
    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    TIMEOUT = "Timeout"
    UPSTREAM_ERROR = "UpstreamError"


class ToolParameter(BaseModel):
    """Parameter definition for a tool."""

    name: str = Field(..., description="Parameter name")
    type: Literal["string", "integer", "number", "boolean", "object", "array"] = Field(
        ..., description="Parameter type"
    )
    description: str = Field(..., description="Parameter description for the model")
    required: bool = Field(True, description="Whether parameter is required")
    default: Any | None = Field(None, description="Default value if not required")
    enum: list[Any] | None = Field(None, description="Allowed values")
    minimum: float | None = Field(None, description="Inclusive lower bound for numbers")
    maximum: float | None = Field(None, description="Inclusive upper bound for numbers")

    def json_schema(self) -> dict[str, Any]:
        """JSON Schema fragment for this parameter."""
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        return schema


class ToolSpec(BaseModel):
    """Static description of one tool.

    Read tools are usually ``cacheable``; action tools are ``mutating`` and
    always go through the confirmation protocol. Loaded once at startup.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique tool name (e.g. 'getMilestones')")
    description: str = Field(..., description="Clear description for the model")
    parameters: list[ToolParameter] = Field(default_factory=list, description="Tool parameters")
    cacheable: bool = Field(False, description="Whether successful results may be cached")
    mutating: bool = Field(False, description="Whether the tool changes project data")
    required_capability: str | None = Field(
        None, description="Capability the caller must hold, e.g. 'timesheets:submit'"
    )
    timeout_seconds: float | None = Field(
        None, gt=0, description="Per-call timeout override in seconds"
    )

    @model_validator(mode="after")
    def check_flags(self) -> "ToolSpec":
        """Mutating tools are never cacheable; parameter names are unique."""
        if self.cacheable and self.mutating:
            raise ValueError(f"Tool '{self.name}' cannot be both cacheable and mutating")
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Tool '{self.name}' has duplicate parameter names")
        if CONFIRMED_PARAM in names:
            raise ValueError(f"'{CONFIRMED_PARAM}' is reserved for the confirmation protocol")
        return self

    def parameter(self, name: str) -> ToolParameter | None:
        """Look up a parameter by name."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None


class ToolInvocation(BaseModel):
    """One tool call requested by the model within a turn."""

    tool_name: str = Field(..., description="Name of the tool to run")
    args: dict[str, Any] = Field(default_factory=dict, description="Raw arguments")
    correlation_id: str = Field(
        default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}",
        description="Ties the result back to the model's request",
    )


class ToolErrorInfo(BaseModel):
    """Error half of a ToolResult."""

    kind: ToolErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one ToolInvocation: a payload or an error, never both."""

    correlation_id: str = Field(..., description="Correlation id of the invocation")
    tool_name: str = Field(..., description="Name of the executed tool")
    ok: bool = Field(..., description="Whether the tool succeeded")
    payload: Any = Field(None, description="Tool-specific output when ok")
    error: ToolErrorInfo | None = Field(None, description="Failure details when not ok")
    latency_ms: float = Field(0.0, ge=0, description="Execution latency in milliseconds")
    cached: bool = Field(False, description="Served from the result cache")

    @classmethod
    def success(
        cls,
        invocation: ToolInvocation,
        payload: Any,
        latency_ms: float = 0.0,
        cached: bool = False,
    ) -> "ToolResult":
        """Build an Ok result for an invocation."""
        return cls(
            correlation_id=invocation.correlation_id,
            tool_name=invocation.tool_name,
            ok=True,
            payload=payload,
            latency_ms=latency_ms,
            cached=cached,
        )

    @classmethod
    def failure(
        cls,
        invocation: ToolInvocation,
        kind: ToolErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
        latency_ms: float = 0.0,
    ) -> "ToolResult":
        """Build an Err result for an invocation."""
        return cls(
            correlation_id=invocation.correlation_id,
            tool_name=invocation.tool_name,
            ok=False,
            error=ToolErrorInfo(kind=kind, message=message, details=details or {}),
            latency_ms=latency_ms,
        )

    @property
    def error_kind(self) -> ToolErrorKind | None:
        """Shortcut for ``result.error.kind``."""
        return self.error.kind if self.error else None

    def model_content(self) -> dict[str, Any]:
        """What the model sees for this result."""
        if self.ok:
            return {"ok": True, "result": self.payload}
        assert self.error is not None
        content: dict[str, Any] = {
            "ok": False,
            "error": {"kind": self.error.kind.value, "message": self.error.message},
        }
        if self.error.details:
            content["error"]["details"] = self.error.details
        return content


# Error hierarchy raised by handlers and mapped onto ToolResult errors


class ToolError(Exception):
    """Base exception for tool failures that carry a ToolErrorKind."""

    kind: ToolErrorKind = ToolErrorKind.UPSTREAM_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:  # noqa: D107
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnknownToolError(ToolError):
    """Raised when a tool name is not registered."""

    kind = ToolErrorKind.UNKNOWN_TOOL


class PermissionDeniedError(ToolError):
    """Raised when the caller may not perform the operation."""

    kind = ToolErrorKind.PERMISSION_DENIED


class ToolValidationError(ToolError):
    """Raised when arguments or entity state make the call invalid."""

    kind = ToolErrorKind.VALIDATION


class AmbiguousMatchError(ToolValidationError):
    """Raised when an identifier matches more than one entity."""

    def __init__(self, message: str, candidates: list[dict[str, Any]]) -> None:  # noqa: D107
        super().__init__(message, details={"ambiguous": True, "candidates": candidates})
        self.candidates = candidates


class NotFoundError(ToolError):
    """Raised when the target entity does not exist in scope."""

    kind = ToolErrorKind.NOT_FOUND


class ToolTimeoutError(ToolError):
    """Raised when a tool call exceeds its time budget."""

    kind = ToolErrorKind.TIMEOUT


class UpstreamError(ToolError):
    """Raised when the data provider fails.

    Attributes:
        transient: Whether a retry of a read may succeed.
    """

    kind = ToolErrorKind.UPSTREAM_ERROR

    def __init__(  # noqa: D107
        self, message: str, transient: bool = False, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message, details)
        self.transient = transient
