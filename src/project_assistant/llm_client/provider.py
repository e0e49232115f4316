"""Contract every model provider implements."""

from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

from project_assistant.llm_client.types import ModelResponse, ModelStreamEvent, ModelTier
from project_assistant.telemetry.trace import TraceContext


@runtime_checkable
class ModelProvider(Protocol):
    """A tool-calling language model reachable per tier."""

    async def respond(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ModelResponse:
        """Single model call; returns final text or tool calls plus usage.

        Args:
            tier: Compute tier to use.
            messages: Internal-format conversation.
            system: System prompt.
            tools: Tool schemas in OpenAI function format.
            trace_ctx: Trace context for telemetry.

        Raises:
            ModelClientError: On provider failure.
        """
        ...

    def stream(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> AsyncIterator[ModelStreamEvent]:
        """Stream text deltas, then one final ``usage`` event.

        Raises:
            ModelClientError: On provider failure (possibly mid-stream).
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
