"""Shared fixtures: a seeded in-memory project, a scripted model and wired services."""

import copy
from collections.abc import AsyncIterator, Callable
from datetime import date
from typing import Any

import pytest

from project_assistant.config.settings import AppConfig
from project_assistant.data.memory import InMemoryDataProvider
from project_assistant.governance.models import CallerContext, default_permissions_config
from project_assistant.llm_client.models import default_model_config
from project_assistant.llm_client.types import (
    ModelClientError,
    ModelResponse,
    ModelStreamEvent,
    ModelTier,
    TokenUsage,
    ToolCall,
)
from project_assistant.orchestrator.types import ConversationRequest
from project_assistant.service.container import AssistantServices, build_services
from project_assistant.telemetry import TraceContext

TODAY = date(2026, 10, 14)  # a Wednesday; the week starts Sunday 11th

PROJECT_ROWS: dict[str, list[dict[str, Any]]] = {
    "projects": [
        {"id": "P1", "tenant_id": "T1", "project_id": "P1", "name": "Apollo", "total_budget": 100000},
    ],
    "resources": [
        {"id": "R1", "project_id": "P1", "name": "Sam Carter", "role": "Developer"},
        {"id": "R2", "project_id": "P1", "name": "Alex Morgan", "role": "Analyst"},
    ],
    "milestones": [
        {
            "id": "M1",
            "project_id": "P1",
            "name": "Phase 1",
            "status": "In Progress",
            "progress": 40,
            "forecast_end_date": "2026-11-30",
            "billable": 40000,
            "actual_spend": 12000,
        },
        {
            "id": "M2",
            "project_id": "P1",
            "name": "Phase 1 Review",
            "status": "Not Started",
            "progress": 0,
            "forecast_end_date": "2026-12-15",
            "billable": 10000,
            "actual_spend": 0,
        },
        {
            "id": "M3",
            "project_id": "P1",
            "name": "Go Live",
            "status": "Not Started",
            "progress": 0,
            "forecast_end_date": "2027-02-01",
            "billable": 30000,
            "actual_spend": 0,
        },
    ],
    "deliverables": [
        {"id": "D1", "project_id": "P1", "name": "Design Pack", "status": "In Progress", "milestone_id": "M1"},
    ],
    "timesheets": [
        {"id": "T-1", "project_id": "P1", "resource_id": "R1", "date": "2026-10-12", "hours": 8,
         "validation_status": "Draft", "deliverable_id": "D1"},
        {"id": "T-2", "project_id": "P1", "resource_id": "R1", "date": "2026-10-13", "hours": 8,
         "validation_status": "Draft", "deliverable_id": "D1"},
        {"id": "T-3", "project_id": "P1", "resource_id": "R1", "date": "2026-10-14", "hours": 8,
         "validation_status": "Draft", "deliverable_id": None},
        {"id": "T-4", "project_id": "P1", "resource_id": "R1", "date": "2026-10-05", "hours": 7.5,
         "validation_status": "Submitted", "deliverable_id": "D1"},
        {"id": "T-5", "project_id": "P1", "resource_id": "R2", "date": "2026-10-12", "hours": 6,
         "validation_status": "Draft", "deliverable_id": "D1"},
    ],
    "expenses": [
        {"id": "E-1", "project_id": "P1", "resource_id": "R1", "date": "2026-10-12", "amount": 120.5,
         "description": "Train to client site", "validation_status": "Draft",
         "chargeable_to_customer": True},
    ],
    "raid_items": [
        {"id": "RA-1", "project_id": "P1", "type": "Risk", "reference_number": 1,
         "title": "Supplier delay", "status": "Open", "priority": "High", "owner_id": "R2"},
        {"id": "RA-2", "project_id": "P1", "type": "Issue", "reference_number": 3,
         "title": "Test environment down", "status": "Open", "priority": "Critical", "owner_id": None},
    ],
    "plan_items": [
        {"id": "PI-1", "project_id": "P1", "item_type": "task", "name": "Write test plan",
         "status": "In Progress", "progress": 50, "assigned_to": "R1", "end_date": "2026-10-30"},
    ],
}


class ScriptedModelProvider:
    """ModelProvider fake that replays queued responses and records every call."""

    def __init__(self) -> None:
        self.responses: list[ModelResponse] = []
        self.calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.stream_chunks: list[str] = ["Hello", " there"]
        self.stream_usage = TokenUsage(input_tokens=50, output_tokens=10)
        self.stream_error: ModelClientError | None = None
        self.error: ModelClientError | None = None
        self.closed = False

    def queue_text(self, text: str, input_tokens: int = 100, output_tokens: int = 20) -> None:
        self.responses.append(
            ModelResponse(
                content=text,
                tool_calls=[],
                usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
                model_id="scripted",
                stop_reason="end_turn",
            )
        )

    def queue_tools(
        self,
        calls: list[tuple[str, dict[str, Any]]],
        content: str = "",
        input_tokens: int = 100,
        output_tokens: int = 20,
    ) -> None:
        tool_calls = [
            ToolCall(id=f"toolu_{len(self.responses)}_{i}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ]
        self.responses.append(
            ModelResponse(
                content=content,
                tool_calls=tool_calls,
                usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
                model_id="scripted",
                stop_reason="tool_use",
            )
        )

    async def respond(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> ModelResponse:
        self.calls.append(
            {"tier": tier, "messages": copy.deepcopy(messages), "system": system, "tools": tools}
        )
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AssertionError("ScriptedModelProvider ran out of responses")
        return self.responses.pop(0)

    async def stream(
        self,
        tier: ModelTier,
        messages: list[dict[str, Any]],
        *,
        system: str | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> AsyncIterator[ModelStreamEvent]:
        self.stream_calls.append({"tier": tier, "messages": copy.deepcopy(messages), "system": system})
        for chunk in self.stream_chunks:
            yield ModelStreamEvent(type="text", data=chunk)
        if self.stream_error is not None:
            raise self.stream_error
        yield ModelStreamEvent(type="usage", data=self.stream_usage)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def project_rows() -> dict[str, list[dict[str, Any]]]:
    """Fresh copy of the seeded project tables."""
    return copy.deepcopy(PROJECT_ROWS)


@pytest.fixture
def data_provider(project_rows) -> InMemoryDataProvider:
    """In-memory provider seeded with one project."""
    return InMemoryDataProvider(project_rows)


@pytest.fixture
def make_caller() -> Callable[..., CallerContext]:
    """Factory for callers in project P1; defaults to Sam, a contributor."""

    def _make(**overrides: Any) -> CallerContext:
        fields: dict[str, Any] = {
            "user_id": "u-sam",
            "role": "contributor",
            "tenant_id": "T1",
            "project_id": "P1",
            "resource_id": "R1",
        }
        fields.update(overrides)
        return CallerContext(**fields)

    return _make


@pytest.fixture
def caller(make_caller) -> CallerContext:
    """Default caller."""
    return make_caller()


@pytest.fixture
def model() -> ScriptedModelProvider:
    """Scripted model provider."""
    return ScriptedModelProvider()


@pytest.fixture
def make_settings() -> Callable[..., AppConfig]:
    """Factory for settings isolated from the developer's environment files."""

    def _make(**overrides: Any) -> AppConfig:
        fields: dict[str, Any] = {
            "model_provider": "anthropic",
            "service_api_key": None,
            "data_provider_url": None,
            "rate_limit_max_requests": 20,
            "rate_limit_window_seconds": 60.0,
        }
        fields.update(overrides)
        return AppConfig(**fields)

    return _make


@pytest.fixture
def make_services(make_settings, model, data_provider) -> Callable[..., AssistantServices]:
    """Factory wiring the scripted model and seeded data into real components."""

    def _make(**settings_overrides: Any) -> AssistantServices:
        services = build_services(
            make_settings(**settings_overrides),
            model_provider=model,
            data_provider=data_provider,
            model_config=default_model_config(),
            permissions=default_permissions_config(),
        )
        # Pin "today" so relative date ranges are deterministic
        services.orchestrator._today = lambda: TODAY
        for spec in services.registry.list_tools(mutating=True):
            entry = services.registry.get_tool(spec.name)
            assert entry is not None
            entry[1].today = lambda: TODAY
        return services

    return _make


@pytest.fixture
def services(make_services) -> AssistantServices:
    """Services with default settings."""
    return make_services()


@pytest.fixture
def make_request() -> Callable[..., ConversationRequest]:
    """Factory for a chat request from Sam; extra turns go before the question."""

    def _make(
        text: str,
        history: list[dict[str, Any]] | None = None,
        snapshot: dict[str, Any] | None = None,
        **caller_overrides: Any,
    ) -> ConversationRequest:
        caller = {
            "userId": "u-sam",
            "role": "contributor",
            "tenantId": "T1",
            "projectId": "P1",
            "resourceId": "R1",
        }
        caller.update(caller_overrides)
        body: dict[str, Any] = {
            "messages": [*(history or []), {"role": "user", "content": text}],
            "caller": caller,
        }
        if snapshot is not None:
            body["snapshot"] = snapshot
        return ConversationRequest.model_validate(body)

    return _make
