"""Claude provider for Anthropic's Messages API.

Serves both tiers through the ``anthropic`` SDK: tool-calling responses for
the standard path and text streaming for the streaming path.
"""

import time
from collections.abc import AsyncIterator
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from project_assistant.llm_client.adapters import (
    adapt_anthropic_response,
    to_anthropic_messages,
    to_anthropic_tools,
)
from project_assistant.llm_client.models import ModelConfig
from project_assistant.llm_client.types import (
    ModelClientError,
    ModelConnectionError,
    ModelRateLimit,
    ModelResponse,
    ModelServerError,
    ModelStreamEvent,
    ModelTier,
    ModelTimeout,
    TokenUsage,
)
from project_assistant.telemetry import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    TraceContext,
    get_logger,
)
from project_assistant.telemetry.events import MODEL_STREAM_COMPLETED, MODEL_STREAM_STARTED

log = get_logger(__name__)


def _map_error(e: Exception) -> ModelClientError:
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(e, anthropic.APITimeoutError):
        return ModelTimeout(f"Anthropic request timed out: {e}")
    if isinstance(e, anthropic.APIConnectionError):
        return ModelConnectionError(f"Failed to connect to Anthropic: {e}")
    if isinstance(e, anthropic.RateLimitError):
        return ModelRateLimit(f"Rate limit exceeded: {e}")
    if isinstance(e, anthropic.APIStatusError):
        if e.status_code >= 500:
            return ModelServerError(f"Server error {e.status_code}: {e}")
        return ModelClientError(f"HTTP error {e.status_code}: {e}")
    return ModelClientError(f"Unexpected error: {e}")


class ClaudeProvider:
    """ModelProvider backed by the Anthropic Messages API.

    Usage:
        provider = ClaudeProvider(api_key=settings.anthropic_api_key, model_config=config)
        response = await provider.respond(ModelTier.STANDARD, messages, tools=tools)
    """

    def __init__(
        self,
        api_key: str | None,
        model_config: ModelConfig,
        max_retries: int = 2,
        client: AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Anthropic API key.
            model_config: Model per tier, with token caps and timeouts.
            max_retries: SDK-level retries on 429/5xx/connection errors.
            client: Pre-built SDK client (tests inject a mock).

        Raises:
            ValueError: If no API key is configured and no client is given.
        """
        if client is None and not api_key:
            raise ValueError(
                "Anthropic API key not configured. Set ASSISTANT_ANTHROPIC_API_KEY environment variable."
            )
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=max_retries)
        self.model_config = model_config

    def _params(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        system: str | None,
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        model = self.model_config.for_tier(tier)
        params: dict[str, Any] = {
            "model": model.id,
            "max_tokens": model.max_tokens,
            "messages": to_anthropic_messages(messages),
            "timeout": model.default_timeout,
        }
        if system:
            params["system"] = system
        if tools:
            params["tools"] = to_anthropic_tools(tools)
        if model.temperature is not None:
            params["temperature"] = model.temperature
        return params

    async def respond(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ModelResponse:
        """Make a single Messages API call.

        Raises:
            ModelTimeout, ModelConnectionError, ModelRateLimit, ModelServerError,
            ModelInvalidResponse, ModelClientError: On failure.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        params = self._params(tier, messages, system, tools)
        span_ctx, span_id = trace_ctx.new_span()
        start_time = time.time()
        log.info(
            MODEL_CALL_STARTED,
            tier=tier.value,
            model_id=params["model"],
            tools_count=len(tools or []),
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        try:
            raw = await self.client.messages.create(**params)
        except anthropic.AnthropicError as e:
            error = _map_error(e)
            log.error(
                MODEL_CALL_ERROR,
                tier=tier.value,
                model_id=params["model"],
                error_type=type(error).__name__,
                error=str(error),
                latency_ms=int((time.time() - start_time) * 1000),
                trace_id=trace_ctx.trace_id,
                span_id=span_id,
            )
            raise error from e

        response = adapt_anthropic_response(raw)
        log.info(
            MODEL_CALL_COMPLETED,
            tier=tier.value,
            model_id=response["model_id"],
            latency_ms=int((time.time() - start_time) * 1000),
            input_tokens=response["usage"]["input_tokens"],
            output_tokens=response["usage"]["output_tokens"],
            tool_calls=len(response["tool_calls"]),
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )
        return response

    async def stream(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> AsyncIterator[ModelStreamEvent]:
        """Stream text deltas, then a final usage event."""
        trace_ctx = trace_ctx or TraceContext.new_trace()
        params = self._params(tier, messages, system, None)
        start_time = time.time()
        log.info(MODEL_STREAM_STARTED, tier=tier.value, model_id=params["model"], **trace_ctx.log_fields())

        try:
            async with self.client.messages.stream(**params) as stream:
                async for text in stream.text_stream:
                    yield ModelStreamEvent(type="text", data=text)
                final = await stream.get_final_message()
        except anthropic.AnthropicError as e:
            error = _map_error(e)
            log.error(
                MODEL_CALL_ERROR,
                tier=tier.value,
                model_id=params["model"],
                error_type=type(error).__name__,
                error=str(error),
                streaming=True,
                **trace_ctx.log_fields(),
            )
            raise error from e

        usage = TokenUsage(
            input_tokens=int(final.usage.input_tokens or 0),
            output_tokens=int(final.usage.output_tokens or 0),
        )
        log.info(
            MODEL_STREAM_COMPLETED,
            tier=tier.value,
            model_id=params["model"],
            latency_ms=int((time.time() - start_time) * 1000),
            **usage,
            **trace_ctx.log_fields(),
        )
        yield ModelStreamEvent(type="usage", data=usage)

    async def aclose(self) -> None:
        """Close the SDK's HTTP client."""
        await self.client.close()
