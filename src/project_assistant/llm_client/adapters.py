"""Adapters between the internal message format and provider wire formats.

Internally a conversation is a list of OpenAI-style dicts:

- ``{"role": "user", "content": str}``
- ``{"role": "assistant", "content": str, "tool_calls": [ToolCall, ...]}``
- ``{"role": "tool", "tool_call_id": str, "name": str, "content": str}``

Tool schemas are kept in OpenAI function-calling format (what
``ToolRegistry.get_tool_definitions_for_llm`` returns). These helpers
translate both to the Anthropic Messages API and to chat completions, and
normalize each provider's response into a ModelResponse.
"""

from typing import Any

import orjson

from project_assistant.llm_client.types import (
    ModelInvalidResponse,
    ModelResponse,
    TokenUsage,
    ToolCall,
)
from project_assistant.telemetry import get_logger

log = get_logger(__name__)


def _parse_arguments(raw: Any, tool_name: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = orjson.loads(raw)
    except orjson.JSONDecodeError:
        log.warning("tool_call_arguments_unparseable", tool_name=tool_name, raw=str(raw)[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


# Anthropic Messages API


def to_anthropic_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert OpenAI function definitions to Anthropic tool definitions."""
    converted = []
    for tool in tools:
        function = tool.get("function", tool)
        converted.append(
            {
                "name": function["name"],
                "description": function.get("description", ""),
                "input_schema": function.get("parameters", {"type": "object", "properties": {}}),
            }
        )
    return converted


def to_anthropic_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert internal messages to Anthropic content-block messages.

    Tool results become ``tool_result`` blocks in a user message, and
    consecutive messages of the same role are merged, since the Messages API
    requires strictly alternating roles.
    """
    converted: list[dict[str, Any]] = []

    def append(role: str, blocks: list[dict[str, Any]]) -> None:
        if not blocks:
            return
        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})

    for msg in messages:
        role = msg.get("role")
        content = msg.get("content") or ""
        if role == "user":
            append("user", [{"type": "text", "text": content}] if content else [])
        elif role == "assistant":
            blocks: list[dict[str, Any]] = []
            if content:
                blocks.append({"type": "text", "text": content})
            for call in msg.get("tool_calls") or []:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["name"],
                        "input": call.get("arguments") or {},
                    }
                )
            append("assistant", blocks)
        elif role == "tool":
            append(
                "user",
                [{"type": "tool_result", "tool_use_id": msg["tool_call_id"], "content": content}],
            )
    return converted


def adapt_anthropic_response(response: Any) -> ModelResponse:
    """Normalize an ``anthropic`` Message object into a ModelResponse.

    Raises:
        ModelInvalidResponse: If the message lacks content or usage.
    """
    try:
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id,
                        name=block.name,
                        arguments=_parse_arguments(block.input, block.name),
                    )
                )
        usage = TokenUsage(
            input_tokens=int(response.usage.input_tokens or 0),
            output_tokens=int(response.usage.output_tokens or 0),
        )
        return ModelResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            usage=usage,
            model_id=response.model,
            stop_reason=getattr(response, "stop_reason", None),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ModelInvalidResponse(f"Invalid response format: {e}") from e


# OpenAI-compatible chat completions


def build_chat_completions_request(
    messages: list[dict[str, Any]],
    model: str,
    tools: list[dict[str, Any]] | None = None,
    max_tokens: int | None = None,
    temperature: float | None = None,
    stream: bool = False,
) -> dict[str, Any]:
    """Build a ``/v1/chat/completions`` payload from internal messages.

    Args:
        messages: Internal messages (a leading system message is allowed).
        model: Model identifier.
        tools: OpenAI function definitions.
        max_tokens: Output token cap.
        temperature: Sampling temperature.
        stream: Request server-sent events.

    Returns:
        Request payload dict.
    """
    wire_messages: list[dict[str, Any]] = []
    for msg in messages:
        if msg.get("role") == "assistant" and msg.get("tool_calls"):
            wire_messages.append(
                {
                    "role": "assistant",
                    "content": msg.get("content") or None,
                    "tool_calls": [
                        {
                            "id": call["id"],
                            "type": "function",
                            "function": {
                                "name": call["name"],
                                "arguments": orjson.dumps(call.get("arguments") or {}).decode(),
                            },
                        }
                        for call in msg["tool_calls"]
                    ],
                }
            )
        else:
            wire_messages.append(dict(msg))

    payload: dict[str, Any] = {"model": model, "messages": wire_messages}
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if temperature is not None:
        payload["temperature"] = temperature
    if stream:
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}
    return payload


def adapt_chat_completions_response(response_data: dict[str, Any]) -> ModelResponse:
    """Adapt an OpenAI-style chat completions response to a ModelResponse.

    Raises:
        ModelInvalidResponse: If response format is invalid or unexpected.
    """
    try:
        choices = response_data.get("choices", [])
        if not choices:
            raise ModelInvalidResponse("Response has no choices")

        choice = choices[0]
        message = choice.get("message", {})
        content = message.get("content", "") or ""

        tool_calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function", {})
            name = function.get("name", "")
            tool_calls.append(
                ToolCall(
                    id=tc.get("id", ""),
                    name=name,
                    arguments=_parse_arguments(function.get("arguments"), name),
                )
            )

        usage = response_data.get("usage") or {}
        return ModelResponse(
            content=content,
            tool_calls=tool_calls,
            usage=TokenUsage(
                input_tokens=int(usage.get("prompt_tokens", 0)),
                output_tokens=int(usage.get("completion_tokens", 0)),
            ),
            model_id=response_data.get("model", ""),
            stop_reason=choice.get("finish_reason"),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ModelInvalidResponse(f"Invalid response format: {e}") from e


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Parse one server-sent-events line from a streaming chat completion.

    Returns:
        The decoded chunk, or None for blank lines, comments and ``[DONE]``.

    Raises:
        ModelInvalidResponse: If a data line is not valid JSON.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if not data or data == "[DONE]":
        return None
    try:
        chunk = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise ModelInvalidResponse(f"Invalid stream chunk: {e}") from e
    return chunk if isinstance(chunk, dict) else None
