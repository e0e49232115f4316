"""Orchestrator turns end to end, with a scripted model and in-memory data."""

import pytest

from project_assistant.llm_client.types import ModelServerError, ModelTimeout
from project_assistant.orchestrator.errors import ForbiddenError, RateLimitedError
from project_assistant.orchestrator.orchestrator import STREAM_INTERRUPTED_NOTICE
from project_assistant.orchestrator.types import RoutePath

BUDGET_SNAPSHOT = {"budgetSummary": {"projectBudget": 100000, "actualSpend": 12000, "percentUsed": 12}}


async def collect(stream) -> str:
    return "".join([chunk async for chunk in stream.chunks])


class TestPaths:
    """Each route produces its reply the expected way."""

    @pytest.mark.asyncio
    async def test_local_answer_makes_no_model_call(self, services, model, make_request) -> None:
        result = await services.orchestrator.handle(make_request("How's the budget?", snapshot=BUDGET_SNAPSHOT))

        assert result.path_taken == RoutePath.LOCAL
        assert "- Actual spend: £12,000" in result.text
        assert result.usage.model_calls == 0
        assert model.calls == [] and model.stream_calls == []
        assert services.accountant.snapshot().turns_by_path == {"local": 1}

    @pytest.mark.asyncio
    async def test_streaming_path_single_pass(self, services, model, make_request) -> None:
        result = await services.orchestrator.handle(make_request("Hello!"))

        assert result.path_taken == RoutePath.STREAMING
        assert result.text == "Hello there"
        assert result.tools_used is False
        assert model.calls == []
        assert model.stream_calls[0]["tier"].value == "streaming"
        assert result.usage.input_tokens == 50
        assert result.usage.cost_usd == pytest.approx((50 * 1 + 10 * 5) / 1_000_000)

    @pytest.mark.asyncio
    async def test_standard_tool_loop(self, services, model, make_request) -> None:
        model.queue_tools([("getPendingActions", {})])
        model.queue_text("You have 3 draft timesheets.")

        result = await services.orchestrator.handle(make_request("Which of my timesheets are still drafts?"))

        assert result.path_taken == RoutePath.STANDARD
        assert result.text == "You have 3 draft timesheets."
        assert result.tools_used is True
        assert result.tools_called == ["getPendingActions"]
        assert result.usage.model_calls == 2
        assert result.usage.input_tokens == 200

        first, second = model.calls
        assert "submitAllTimesheets" in {t["function"]["name"] for t in first["tools"]}
        assert "Project id: P1" in first["system"]
        tool_message = second["messages"][-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "toolu_0_0"
        assert '"draftTimesheets":3' in tool_message["content"]

    @pytest.mark.asyncio
    async def test_tool_errors_are_fed_back_to_the_model(self, services, model, make_request) -> None:
        model.queue_tools([("getBudgetSummary", {}), ("noSuchTool", {})])
        model.queue_text("Here is the budget.")

        result = await services.orchestrator.handle(make_request("What's our spend by category?"))

        contents = [m["content"] for m in model.calls[1]["messages"] if m["role"] == "tool"]
        assert '"projectBudget":100000' in contents[0]
        assert '"kind":"UnknownTool"' in contents[1]
        assert result.tools_called == ["getBudgetSummary", "noSuchTool"]

    @pytest.mark.asyncio
    async def test_action_preview_surfaces_pending_action(self, services, model, make_request, data_provider) -> None:
        model.queue_tools([("submitAllTimesheets", {})])
        model.queue_text("Please confirm the submission.")

        result = await services.orchestrator.handle(make_request("Submit my timesheets"))

        assert len(result.pending_actions) == 1
        pending = result.pending_actions[0]
        assert pending["actionName"] == "submitAllTimesheets"
        assert pending["preview"].startswith("Submit 3 timesheet(s) totaling 24 hours")
        assert data_provider.call_count("update") == 0

    @pytest.mark.asyncio
    async def test_confirmation_turn_applies_action(self, services, model, make_request, data_provider) -> None:
        model.queue_tools([("submitAllTimesheets", {})])
        model.queue_text("Please confirm.")
        await services.orchestrator.handle(make_request("Submit my timesheets"))

        model.queue_tools([("submitAllTimesheets", {"confirmed": True})])
        model.queue_text("Done: 3 timesheets submitted.")
        result = await services.orchestrator.handle(
            make_request(
                "Yes, submit them",
                history=[
                    {"role": "user", "content": "Submit my timesheets"},
                    {"role": "assistant", "content": "Please confirm."},
                ],
            )
        )

        assert result.pending_actions == []
        assert data_provider.call_count("update") == 1
        assert result.text == "Done: 3 timesheets submitted."

    @pytest.mark.asyncio
    async def test_loop_bound_falls_back_to_tool_results(self, make_services, model, make_request) -> None:
        services = make_services(orchestrator_max_tool_iterations=2)
        model.queue_tools([("getMilestones", {})])
        model.queue_tools([("getTasks", {})])

        result = await services.orchestrator.handle(make_request("Which tasks block the milestones?"))

        assert len(model.calls) == 2
        assert result.text.startswith("I gathered some information but couldn't finish the answer.")
        assert "- getTasks: success" in result.text

    @pytest.mark.asyncio
    async def test_empty_reply_without_tools(self, services, model, make_request) -> None:
        model.queue_text("")

        result = await services.orchestrator.handle(make_request("Which tasks are overdue?"))

        assert result.text.startswith("I couldn't produce a final answer")

    @pytest.mark.asyncio
    async def test_history_is_trimmed(self, make_services, model, make_request) -> None:
        services = make_services(conversation_history_max_tokens=256)
        history = [
            {"role": "user", "content": "a" * 2000},
            {"role": "assistant", "content": "b" * 2000},
        ]
        model.queue_text("Sure.")

        await services.orchestrator.handle(make_request("Which tasks are overdue?", history=history))

        assert model.calls[0]["messages"] == [{"role": "user", "content": "Which tasks are overdue?"}]


class TestAdmission:
    """Boundary checks run before any model or tool work."""

    @pytest.mark.asyncio
    async def test_unknown_role_forbidden(self, services, model, make_request) -> None:
        with pytest.raises(ForbiddenError):
            await services.orchestrator.handle(make_request("Hello!", role="intruder"))

        assert model.stream_calls == []

    @pytest.mark.asyncio
    async def test_rate_limit(self, make_services, make_request) -> None:
        services = make_services(rate_limit_max_requests=2)
        request = make_request("How's the budget?", snapshot=BUDGET_SNAPSHOT)

        first = await services.orchestrator.handle(request)
        await services.orchestrator.handle(request)
        with pytest.raises(RateLimitedError) as exc_info:
            await services.orchestrator.handle(request)

        assert first.rate_limit_remaining == 1
        assert exc_info.value.retry_after_seconds >= 1
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_user(self, make_services, make_request) -> None:
        services = make_services(rate_limit_max_requests=1)

        await services.orchestrator.handle(make_request("budget?", snapshot=BUDGET_SNAPSHOT))
        other = await services.orchestrator.handle(
            make_request("budget?", snapshot=BUDGET_SNAPSHOT, userId="u-alex")
        )

        assert other.path_taken == RoutePath.LOCAL


class TestFailures:
    """Model failures and streaming interruptions."""

    @pytest.mark.asyncio
    async def test_model_error_propagates(self, services, model, make_request) -> None:
        model.error = ModelTimeout("slow")

        with pytest.raises(ModelTimeout):
            await services.orchestrator.handle(make_request("Which tasks are overdue?"))

    @pytest.mark.asyncio
    async def test_stream_failure_before_text_raises(self, services, model, make_request) -> None:
        model.stream_chunks = []
        model.stream_error = ModelServerError("down")

        with pytest.raises(ModelServerError):
            await services.orchestrator.open_stream(make_request("Hello!"))

    @pytest.mark.asyncio
    async def test_mid_stream_failure_appends_notice(self, services, model, make_request) -> None:
        model.stream_error = ModelServerError("connection reset")

        stream = await services.orchestrator.open_stream(make_request("Hello!"))
        text = await collect(stream)

        assert text == "Hello there" + STREAM_INTERRUPTED_NOTICE
        assert services.accountant.snapshot().turns_by_path == {"streaming": 1}


class TestStreaming:
    """open_stream for each path."""

    @pytest.mark.asyncio
    async def test_streaming_path_relays_chunks(self, services, model, make_request) -> None:
        model.stream_chunks = ["One", ", two", ", three"]

        stream = await services.orchestrator.open_stream(make_request("What can you do?"))
        chunks = [c async for c in stream.chunks]

        assert stream.path == RoutePath.STREAMING
        assert chunks == ["One", ", two", ", three"]
        snap = services.accountant.snapshot()
        assert snap.by_tier["streaming"].input_tokens == 50

    @pytest.mark.asyncio
    async def test_standard_path_runs_loop_then_streams(self, services, model, make_request) -> None:
        model.queue_tools([("getResources", {})])
        model.queue_text("Sam and Alex.")

        stream = await services.orchestrator.open_stream(make_request("Who works on this?"))

        # The loop already ran before any body is sent
        assert len(model.calls) == 2
        assert stream.path == RoutePath.STANDARD
        assert await collect(stream) == "Sam and Alex."

    @pytest.mark.asyncio
    async def test_local_path_streams_answer(self, services, make_request) -> None:
        stream = await services.orchestrator.open_stream(make_request("budget?", snapshot=BUDGET_SNAPSHOT))

        assert stream.path == RoutePath.LOCAL
        assert "Budget summary" in await collect(stream)
