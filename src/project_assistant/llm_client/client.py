"""OpenAI-compatible chat completions provider.

This module provides the ChatCompletionsProvider class for serving both tiers
from any ``/v1/chat/completions`` endpoint (vLLM, LM Studio, a gateway, ...)
with error handling, retries and telemetry.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from project_assistant.llm_client.adapters import (
    adapt_chat_completions_response,
    build_chat_completions_request,
    parse_sse_line,
)
from project_assistant.llm_client.models import ModelConfig, ModelDefinition
from project_assistant.llm_client.types import (
    ModelClientError,
    ModelConnectionError,
    ModelInvalidResponse,
    ModelRateLimit,
    ModelResponse,
    ModelServerError,
    ModelStreamEvent,
    ModelTier,
    ModelTimeout,
    TokenUsage,
)
from project_assistant.telemetry import get_logger
from project_assistant.telemetry.events import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_RETRY,
    MODEL_CALL_STARTED,
    MODEL_STREAM_COMPLETED,
    MODEL_STREAM_STARTED,
)
from project_assistant.telemetry.trace import TraceContext

log = get_logger(__name__)


def _with_system(messages: list[dict[str, Any]], system: str | None) -> list[dict[str, Any]]:
    if not system:
        return list(messages)
    return [{"role": "system", "content": system}, *messages]


class ChatCompletionsProvider:
    """ModelProvider for OpenAI-compatible chat completions servers.

    Attributes:
        base_url: Base URL for the API (e.g., "http://localhost:8000/v1").
        api_key: Optional bearer token.
        max_retries: Maximum number of retry attempts.
        model_config: Model per tier.
    """

    def __init__(
        self,
        base_url: str,
        model_config: ModelConfig,
        api_key: str | None = None,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: Default base URL; a tier's ``endpoint`` overrides it.
            model_config: Model per tier.
            api_key: Bearer token sent on every request.
            max_retries: Retries on timeouts, 429 and 5xx.
            transport: Custom httpx transport (tests use ``httpx.MockTransport``).
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_retries = max_retries
        self.model_config = model_config
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(headers=headers, transport=transport)

    def _endpoint(self, model: ModelDefinition) -> str:
        base = (model.endpoint or self.base_url).rstrip("/")
        return f"{base}/chat/completions"

    @staticmethod
    def _timeout(model: ModelDefinition) -> httpx.Timeout:
        # Longer read timeout for generation
        return httpx.Timeout(connect=10.0, read=model.default_timeout, write=10.0, pool=10.0)

    async def respond(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ModelResponse:
        """Call the chat completions endpoint with retries.

        Timeouts, 429 and 5xx responses are retried with exponential backoff;
        connection failures and other 4xx responses are not.

        Raises:
            ModelTimeout, ModelConnectionError, ModelRateLimit, ModelServerError,
            ModelInvalidResponse, ModelClientError: When all attempts fail.
        """
        if trace_ctx is None:
            trace_ctx = TraceContext.new_trace()

        model = self.model_config.for_tier(tier)
        endpoint = self._endpoint(model)
        payload = build_chat_completions_request(
            messages=_with_system(messages, system),
            model=model.id,
            tools=tools,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
        )

        start_time = time.time()
        span_ctx, span_id = trace_ctx.new_span()
        log.info(
            MODEL_CALL_STARTED,
            tier=tier.value,
            model_id=model.id,
            endpoint=endpoint,
            tools_count=len(tools or []),
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        last_error: ModelClientError | None = None
        attempt = 0
        while attempt <= self.max_retries:
            retryable = False
            try:
                response = await self._client.post(
                    endpoint, json=payload, timeout=self._timeout(model)
                )
                response.raise_for_status()
                model_response = adapt_chat_completions_response(response.json())

                log.info(
                    MODEL_CALL_COMPLETED,
                    tier=tier.value,
                    model_id=model.id,
                    latency_ms=int((time.time() - start_time) * 1000),
                    input_tokens=model_response["usage"]["input_tokens"],
                    output_tokens=model_response["usage"]["output_tokens"],
                    tool_calls=len(model_response["tool_calls"]),
                    attempts=attempt + 1,
                    trace_id=trace_ctx.trace_id,
                    span_id=span_id,
                )
                return model_response

            except httpx.TimeoutException:
                last_error = ModelTimeout(
                    f"Request to {endpoint} timed out after {model.default_timeout}s"
                )
                retryable = True

            except httpx.ConnectError as e:
                # Server is likely down
                last_error = ModelConnectionError(f"Failed to connect to {endpoint}: {e}")

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429:
                    last_error = ModelRateLimit(f"Rate limit exceeded: {e}")
                    retryable = True
                elif status >= 500:
                    last_error = ModelServerError(f"Server error {status}: {e}")
                    retryable = True
                else:
                    last_error = ModelClientError(f"HTTP error {status}: {e}")

            except httpx.RequestError as e:
                last_error = ModelConnectionError(f"Request error: {e}")

            except ModelInvalidResponse as e:
                last_error = e

            except ValueError as e:
                last_error = ModelInvalidResponse(f"Invalid response format: {e}")

            if not retryable or attempt >= self.max_retries:
                break
            wait_time = 2**attempt
            log.warning(
                MODEL_CALL_RETRY,
                attempt=attempt + 1,
                wait_time=wait_time,
                error_type=type(last_error).__name__,
                trace_id=trace_ctx.trace_id,
            )
            await asyncio.sleep(wait_time)
            attempt += 1

        log.error(
            MODEL_CALL_ERROR,
            tier=tier.value,
            model_id=model.id,
            error_type=type(last_error).__name__ if last_error else "UnknownError",
            error=str(last_error),
            latency_ms=int((time.time() - start_time) * 1000),
            attempts=attempt + 1,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )
        raise last_error or ModelClientError("Model call failed")

    async def stream(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> AsyncIterator[ModelStreamEvent]:
        """Stream text deltas over server-sent events, then a usage event.

        Streams are not retried: once text has been forwarded to the caller a
        retry would duplicate it.
        """
        if trace_ctx is None:
            trace_ctx = TraceContext.new_trace()

        model = self.model_config.for_tier(tier)
        endpoint = self._endpoint(model)
        payload = build_chat_completions_request(
            messages=_with_system(messages, system),
            model=model.id,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
            stream=True,
        )
        start_time = time.time()
        log.info(MODEL_STREAM_STARTED, tier=tier.value, model_id=model.id, **trace_ctx.log_fields())

        usage = TokenUsage(input_tokens=0, output_tokens=0)
        try:
            async with self._client.stream(
                "POST", endpoint, json=payload, timeout=self._timeout(model)
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    chunk = parse_sse_line(line)
                    if chunk is None:
                        continue
                    if chunk.get("usage"):
                        usage = TokenUsage(
                            input_tokens=int(chunk["usage"].get("prompt_tokens", 0)),
                            output_tokens=int(chunk["usage"].get("completion_tokens", 0)),
                        )
                    for choice in chunk.get("choices") or []:
                        text = (choice.get("delta") or {}).get("content")
                        if text:
                            yield ModelStreamEvent(type="text", data=text)
        except httpx.TimeoutException as e:
            log.error(MODEL_CALL_ERROR, tier=tier.value, error_type="ModelTimeout", streaming=True)
            raise ModelTimeout(f"Stream from {endpoint} timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.error(MODEL_CALL_ERROR, tier=tier.value, status_code=status, streaming=True)
            if status == 429:
                raise ModelRateLimit(f"Rate limit exceeded: {e}") from e
            if status >= 500:
                raise ModelServerError(f"Server error {status}: {e}") from e
            raise ModelClientError(f"HTTP error {status}: {e}") from e
        except httpx.RequestError as e:
            log.error(MODEL_CALL_ERROR, tier=tier.value, error_type="ModelConnectionError", streaming=True)
            raise ModelConnectionError(f"Stream request error: {e}") from e

        log.info(
            MODEL_STREAM_COMPLETED,
            tier=tier.value,
            model_id=model.id,
            latency_ms=int((time.time() - start_time) * 1000),
            **usage,
            **trace_ctx.log_fields(),
        )
        yield ModelStreamEvent(type="usage", data=usage)

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        await self._client.aclose()
