"""Tests for conversation conversion and the history window."""

from project_assistant.orchestrator.conversation import apply_history_window, to_model_messages
from project_assistant.orchestrator.types import ConversationTurn


def msg(role: str, chars: int) -> dict:
    return {"role": role, "content": "x" * chars}


def test_replayed_tool_results_become_user_text() -> None:
    turns = [
        ConversationTurn(role="user", content="Submit my timesheets"),
        ConversationTurn(role="tool-result", content='{"preview": "Submit 3"}', name="submitAllTimesheets"),
        ConversationTurn(role="assistant", content=None),
        ConversationTurn(role="user", content="Yes, go ahead"),
    ]

    messages = to_model_messages(turns)

    assert messages == [
        {"role": "user", "content": "Submit my timesheets"},
        {"role": "user", "content": '[Result of submitAllTimesheets]\n{"preview": "Submit 3"}'},
        {"role": "user", "content": "Yes, go ahead"},
    ]


def test_history_within_budget_is_untouched() -> None:
    messages = [msg("user", 40), msg("assistant", 40)]

    assert apply_history_window(messages, 1000) == messages


def test_history_keeps_most_recent() -> None:
    messages = [msg("user", 400), msg("assistant", 400), msg("user", 400), msg("assistant", 400), msg("user", 40)]

    kept = apply_history_window(messages, 250)

    assert kept == messages[2:]


def test_window_opens_on_a_user_message() -> None:
    messages = [msg("user", 400), msg("assistant", 400), msg("user", 400), msg("assistant", 400), msg("user", 40)]

    kept = apply_history_window(messages, 150)

    assert kept == [messages[-1]]


def test_latest_message_always_kept() -> None:
    huge = msg("user", 100_000)

    assert apply_history_window([msg("user", 10), huge], 10) == [huge]


def test_empty_history() -> None:
    assert apply_history_window([], 100) == []
