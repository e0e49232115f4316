"""Core types for the orchestrator.

This module defines the data structures used throughout the orchestrator:
- ConversationTurn / ConversationRequest: Inbound conversation (immutable per turn)
- PrefetchedSnapshot: Optional aggregate supplied by the caller for local answers
- RoutePath / RoutingResult: Router decision output
- TurnUsage / ChatResult: Final result returned to the service layer
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import TypedDict

from project_assistant.governance.models import CallerContext
from project_assistant.llm_client.types import ModelTier


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ConversationTurn(_CamelModel):
    """One turn of the conversation as sent by the front end.

    ``tool_result`` turns (also accepted as ``tool-result``) carry an earlier
    tool output the front end chose to replay.
    """

    role: Literal["user", "assistant", "tool_result"]
    content: str = ""
    tool_call_id: str | None = None
    name: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Any) -> Any:
        """Accept the hyphenated spelling used by some clients."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v == "tool-result":
                return "tool_result"
        return v

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v: Any) -> Any:
        """Treat a missing content as empty text."""
        return "" if v is None else v


# Snapshot sections. Every section and every field is optional; the
# front end fills in whatever its aggregate view could load.


class _SnapshotSection(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )


class ProjectInfo(_SnapshotSection):
    """Identity of the project the snapshot describes."""

    id: str | None = None
    name: str | None = None
    reference: str | None = None


class BudgetSummary(_SnapshotSection):
    """Budget roll-up."""

    project_budget: float | None = None
    milestone_billable: float | None = None
    actual_spend: float | None = None
    variance: float | None = None
    percent_used: float | None = None


class StatusSummary(_SnapshotSection):
    """Count of items, broken down by status key (``inProgress``, ``atRisk``...)."""

    total: int | None = None
    by_status: dict[str, int] = Field(default_factory=dict)


class TimesheetSummary(_SnapshotSection):
    """Timesheet roll-up for the current period."""

    total_entries: int | None = None
    total_hours: float | None = None
    by_status: dict[str, int] = Field(default_factory=dict)


class ExpenseSummary(_SnapshotSection):
    """Expense roll-up."""

    total_entries: int | None = None
    total_amount: float | None = None
    chargeable_amount: float | None = None
    non_chargeable_amount: float | None = None


class PendingActionsSummary(_SnapshotSection):
    """Items waiting on the caller or on validators."""

    draft_timesheets: int | None = None
    awaiting_validation: int | None = None
    has_pending: bool | None = None


class RaidSummary(_SnapshotSection):
    """Risks, assumptions, issues and dependencies."""

    total: int | None = None
    open_risks: int | None = None
    open_issues: int | None = None
    high_priority: int | None = None
    by_type: dict[str, int] = Field(default_factory=dict)


class QualityStandardsSummary(_SnapshotSection):
    """Quality standard compliance."""

    total: int | None = None
    compliant: int | None = None
    needs_attention: int | None = None
    compliance_rate: float | None = None


class PrefetchedSnapshot(_SnapshotSection):
    """Precomputed aggregate enabling instant local answers."""

    project: ProjectInfo | None = None
    budget_summary: BudgetSummary | None = None
    milestone_summary: StatusSummary | None = None
    deliverable_summary: StatusSummary | None = None
    timesheet_summary: TimesheetSummary | None = None
    expense_summary: ExpenseSummary | None = None
    pending_actions: PendingActionsSummary | None = None
    raid_summary: RaidSummary | None = None
    quality_standards_summary: QualityStandardsSummary | None = None
    fetched_at: datetime | None = None


class ConversationRequest(_CamelModel):
    """Inbound chat request: conversation, caller and optional snapshot.

    Immutable for the duration of the turn.
    """

    messages: list[ConversationTurn] = Field(..., min_length=1)
    caller: CallerContext
    snapshot: PrefetchedSnapshot | None = None

    @model_validator(mode="after")
    def check_last_turn(self) -> "ConversationRequest":
        """The conversation must end with the user's question."""
        last = self.messages[-1]
        if last.role != "user":
            raise ValueError("The last message must be from the user")
        if not last.content.strip():
            raise ValueError("The last user message must not be empty")
        return self

    @property
    def latest_user_message(self) -> str:
        """Text of the question being answered."""
        return self.messages[-1].content


class RoutePath(str, Enum):
    """How a request is answered."""

    LOCAL = "local"  # From the snapshot, no model call
    STREAMING = "streaming"  # Cheapest tier, single pass, no tools
    STANDARD = "standard"  # Full tier, tools, iterative loop


class RoutingResult(TypedDict):
    """Router decision output.

    Fields:
        path: Chosen route.
        tier: Model tier for the route (None for local answers).
        reason: Brief explanation of the decision.
        classifier: Name of the classifier that decided.
        local_answer: Formatted answer text when path is LOCAL.
    """

    path: RoutePath
    tier: ModelTier | None
    reason: str
    classifier: str
    local_answer: str | None


class TurnUsage(BaseModel):
    """Model usage for a single chat turn."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    model_calls: int = 0

    def add(self, input_tokens: int, output_tokens: int, cost_usd: float) -> None:
        """Accumulate one model call."""
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.cost_usd += cost_usd
        self.model_calls += 1


class ChatResult(_CamelModel):
    """Final result of a chat turn.

    Attributes:
        text: Reply shown to the user.
        usage: Tokens and cost spent on this turn.
        tools_used: Whether any tool ran.
        tools_called: Names of the tools that ran, in call order.
        path_taken: Route that produced the reply.
        pending_actions: Action previews awaiting the user's confirmation.
        trace_id: Correlates the turn's log events.
        rate_limit_remaining: Requests left in the caller's window (header only).
    """

    text: str
    usage: TurnUsage = Field(default_factory=TurnUsage)
    tools_used: bool = False
    tools_called: list[str] = Field(default_factory=list)
    path_taken: RoutePath
    pending_actions: list[dict[str, Any]] = Field(default_factory=list)
    trace_id: str
    rate_limit_remaining: int | None = Field(None, exclude=True)
