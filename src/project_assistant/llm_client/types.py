"""Provider-neutral shapes exchanged with model backends.

Both the Anthropic and the OpenAI-compatible providers translate their wire
formats into these TypedDicts, so the orchestrator never sees a
provider-specific object.
"""

from enum import Enum
from typing import Any, Literal

from typing_extensions import TypedDict


class ModelTier(str, Enum):
    """Model tier picked by the response router (see config/models.yaml).

    The local path answers from the snapshot and has no tier.
    """

    STREAMING = "streaming"
    STANDARD = "standard"


class ToolCall(TypedDict):
    """One tool invocation requested by the model.

    Attributes:
        id: Provider correlation id, echoed back with the tool result.
        name: Registered tool name, e.g. ``getMilestones``.
        arguments: Parsed JSON arguments (``{}`` when unparseable).
    """

    id: str
    name: str
    arguments: dict[str, Any]


class TokenUsage(TypedDict):
    """Token counts for one model call."""

    input_tokens: int
    output_tokens: int


class ModelResponse(TypedDict):
    """A completed, non-streamed model call."""

    content: str
    tool_calls: list[ToolCall]
    usage: TokenUsage
    model_id: str
    stop_reason: str | None


class ModelStreamEvent(TypedDict):
    """Item yielded while streaming: a text delta, then one final usage event."""

    type: Literal["text", "usage"]
    data: Any  # str for "text", TokenUsage for "usage"


class ModelClientError(Exception):
    """Base class for failures talking to a model backend."""


class ModelTimeout(ModelClientError):
    """The backend did not answer in time (HTTP 504 to the caller)."""


class ModelConnectionError(ModelClientError):
    """The backend could not be reached."""


class ModelRateLimit(ModelClientError):
    """The backend throttled us (429) and retries were exhausted."""


class ModelServerError(ModelClientError):
    """The backend returned an error status."""


class ModelInvalidResponse(ModelClientError):
    """The backend answered with something we could not interpret."""
