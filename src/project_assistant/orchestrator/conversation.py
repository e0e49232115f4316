"""Conversation history helpers: inbound turns to model messages, and trimming."""

from typing import Any

from project_assistant.orchestrator.types import ConversationTurn
from project_assistant.telemetry import get_logger

log = get_logger(__name__)


def to_model_messages(turns: list[ConversationTurn]) -> list[dict[str, Any]]:
    """Convert front-end turns to internal model messages.

    Replayed tool results have no matching assistant tool call in the history
    the front end keeps, so they are passed to the model as user-visible text.

    Args:
        turns: Conversation turns, ending with the user's question.

    Returns:
        OpenAI-style message list.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        if turn.role == "tool_result":
            label = turn.name or "tool"
            messages.append({"role": "user", "content": f"[Result of {label}]\n{turn.content}"})
        elif turn.content:
            messages.append({"role": turn.role, "content": turn.content})
    return messages


def estimate_message_tokens(message: dict[str, Any]) -> int:
    """Estimate token count for one message (about four characters per token)."""
    content = message.get("content", "")
    if not isinstance(content, str):
        content = str(content)
    return max(1, len(content) // 4)


def estimate_messages_tokens(messages: list[dict[str, Any]]) -> int:
    """Estimate token count for a list of messages."""
    return sum(estimate_message_tokens(message) for message in messages)


def apply_history_window(
    messages: list[dict[str, Any]],
    max_tokens: int,
    *,
    trace_id: str | None = None,
) -> list[dict[str, Any]]:
    """Trim conversation history to fit within a token budget.

    Keeps the most recent messages. The latest message is always kept, and
    the window always opens on a user message since both providers require
    the conversation to start with the user.

    Args:
        messages: Full history in internal format.
        max_tokens: Token budget for the history.
        trace_id: Trace identifier for telemetry.

    Returns:
        Trimmed message list.
    """
    if not messages:
        return []

    input_tokens = estimate_messages_tokens(messages)
    if input_tokens <= max_tokens:
        return list(messages)

    kept_reversed: list[dict[str, Any]] = [messages[-1]]
    used = estimate_message_tokens(messages[-1])
    for message in reversed(messages[:-1]):
        message_tokens = estimate_message_tokens(message)
        if used + message_tokens > max_tokens:
            break
        kept_reversed.append(message)
        used += message_tokens

    kept = list(reversed(kept_reversed))
    while len(kept) > 1 and kept[0].get("role") != "user":
        kept.pop(0)

    log.info(
        "history_window_applied",
        trace_id=trace_id,
        input_messages=len(messages),
        output_messages=len(kept),
        estimated_input_tokens=input_tokens,
        estimated_output_tokens=estimate_messages_tokens(kept),
    )
    return kept
