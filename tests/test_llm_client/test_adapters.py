"""Tests for translation between internal messages and provider wire formats."""

from types import SimpleNamespace

import pytest

from project_assistant.llm_client.adapters import (
    adapt_anthropic_response,
    adapt_chat_completions_response,
    build_chat_completions_request,
    parse_sse_line,
    to_anthropic_messages,
    to_anthropic_tools,
)
from project_assistant.llm_client.types import ModelInvalidResponse

TOOL_TURN = [
    {"role": "user", "content": "How many hours did I log?"},
    {
        "role": "assistant",
        "content": "Let me check.",
        "tool_calls": [
            {"id": "call_1", "name": "getTimesheets", "arguments": {"mine": True}},
            {"id": "call_2", "name": "getPendingActions", "arguments": {}},
        ],
    },
    {"role": "tool", "tool_call_id": "call_1", "name": "getTimesheets", "content": '{"count": 3}'},
    {"role": "tool", "tool_call_id": "call_2", "name": "getPendingActions", "content": "{}"},
]


class TestAnthropicFormat:
    """Conversion to the Anthropic Messages API."""

    def test_tool_results_merge_into_one_user_message(self) -> None:
        converted = to_anthropic_messages(TOOL_TURN)

        assert [m["role"] for m in converted] == ["user", "assistant", "user"]
        assistant = converted[1]["content"]
        assert assistant[0] == {"type": "text", "text": "Let me check."}
        assert assistant[1] == {
            "type": "tool_use",
            "id": "call_1",
            "name": "getTimesheets",
            "input": {"mine": True},
        }
        results = converted[2]["content"]
        assert [b["tool_use_id"] for b in results] == ["call_1", "call_2"]
        assert all(b["type"] == "tool_result" for b in results)

    def test_consecutive_user_messages_merge(self) -> None:
        converted = to_anthropic_messages(
            [{"role": "user", "content": "Hi"}, {"role": "user", "content": "Anyone there?"}]
        )

        assert len(converted) == 1
        assert [b["text"] for b in converted[0]["content"]] == ["Hi", "Anyone there?"]

    def test_empty_messages_dropped(self) -> None:
        converted = to_anthropic_messages(
            [{"role": "user", "content": ""}, {"role": "assistant", "content": ""}]
        )

        assert converted == []

    def test_tools_use_input_schema(self) -> None:
        tools = to_anthropic_tools(
            [
                {
                    "type": "function",
                    "function": {
                        "name": "getMilestones",
                        "description": "List milestones",
                        "parameters": {"type": "object", "properties": {"status": {"type": "string"}}},
                    },
                }
            ]
        )

        assert tools == [
            {
                "name": "getMilestones",
                "description": "List milestones",
                "input_schema": {"type": "object", "properties": {"status": {"type": "string"}}},
            }
        ]

    def test_adapt_response(self) -> None:
        message = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Checking "),
                SimpleNamespace(type="tool_use", id="toolu_1", name="getRaidItems", input={"type": "Risk"}),
            ],
            usage=SimpleNamespace(input_tokens=120, output_tokens=30),
            model="claude-sonnet",
            stop_reason="tool_use",
        )

        response = adapt_anthropic_response(message)

        assert response["content"] == "Checking "
        assert response["tool_calls"] == [
            {"id": "toolu_1", "name": "getRaidItems", "arguments": {"type": "Risk"}}
        ]
        assert response["usage"] == {"input_tokens": 120, "output_tokens": 30}
        assert response["stop_reason"] == "tool_use"

    def test_adapt_response_without_usage(self) -> None:
        with pytest.raises(ModelInvalidResponse):
            adapt_anthropic_response(SimpleNamespace(content=[], model="m"))


class TestChatCompletionsFormat:
    """Conversion to OpenAI-compatible chat completions."""

    def test_request_serializes_tool_arguments(self) -> None:
        payload = build_chat_completions_request(TOOL_TURN, model="local-model", max_tokens=256)

        assistant = payload["messages"][1]
        assert assistant["tool_calls"][0]["function"] == {
            "name": "getTimesheets",
            "arguments": '{"mine":true}',
        }
        assert payload["messages"][2]["role"] == "tool"
        assert payload["max_tokens"] == 256
        assert "tools" not in payload
        assert "stream" not in payload

    def test_request_with_tools_and_stream(self) -> None:
        tools = [{"type": "function", "function": {"name": "getResources", "parameters": {}}}]

        payload = build_chat_completions_request(
            [{"role": "user", "content": "hi"}], model="m", tools=tools, stream=True
        )

        assert payload["tools"] == tools
        assert payload["tool_choice"] == "auto"
        assert payload["stream_options"] == {"include_usage": True}

    def test_adapt_response_with_tool_calls(self) -> None:
        response = adapt_chat_completions_response(
            {
                "model": "local-model",
                "choices": [
                    {
                        "message": {
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_9",
                                    "type": "function",
                                    "function": {"name": "getTasks", "arguments": '{"status": "Complete"}'},
                                }
                            ],
                        },
                        "finish_reason": "tool_calls",
                    }
                ],
                "usage": {"prompt_tokens": 50, "completion_tokens": 7},
            }
        )

        assert response["content"] == ""
        assert response["tool_calls"][0]["arguments"] == {"status": "Complete"}
        assert response["usage"] == {"input_tokens": 50, "output_tokens": 7}

    def test_unparseable_arguments_become_empty(self) -> None:
        response = adapt_chat_completions_response(
            {
                "choices": [
                    {
                        "message": {
                            "tool_calls": [{"id": "c", "function": {"name": "getTasks", "arguments": "{oops"}}]
                        }
                    }
                ]
            }
        )

        assert response["tool_calls"][0]["arguments"] == {}

    def test_no_choices(self) -> None:
        with pytest.raises(ModelInvalidResponse, match="no choices"):
            adapt_chat_completions_response({"choices": []})


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ('data: {"choices": []}', {"choices": []}),
        ("data: [DONE]", None),
        ("", None),
        (": keep-alive", None),
        ("event: message", None),
    ],
)
def test_parse_sse_line(line: str, expected) -> None:
    assert parse_sse_line(line) == expected


def test_parse_sse_line_rejects_bad_json() -> None:
    with pytest.raises(ModelInvalidResponse):
        parse_sse_line("data: {not json")
