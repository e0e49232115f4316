"""Types shared by the action handlers and the confirmation protocol."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from project_assistant.governance.models import Scope
from project_assistant.tools.cache import canonical_hash


@dataclass(frozen=True)
class ActionOutcome:
    """What an applied mutation reports back."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionPlan:
    """A fully validated mutation, described but not yet performed.

    Built by an action handler's ``prepare()`` using reads only.

    Attributes:
        action_name: Tool name the plan belongs to.
        preview: Human-readable description of the effect.
        resolved_args: Arguments with every identifier resolved to an id;
            confirmations must resolve to the same values.
        apply: Performs the mutation; called at most once.
        data: Structured preview data shown alongside the text.
        state: Current state of the targets; a change between preview and
            confirmation alters the fingerprint.
        noop_message: Set when there is nothing to do; no ticket is issued.
    """

    action_name: str
    preview: str
    resolved_args: dict[str, Any]
    apply: Callable[[], Awaitable[ActionOutcome]]
    data: dict[str, Any] = field(default_factory=dict)
    state: Any = None
    noop_message: str | None = None

    @classmethod
    def nothing_to_do(
        cls,
        action_name: str,
        message: str,
        resolved_args: dict[str, Any],
        data: dict[str, Any] | None = None,
    ) -> "ActionPlan":
        """A plan that reports ``message`` and never reaches confirmation."""

        async def refuse() -> ActionOutcome:
            raise RuntimeError(f"{action_name} has nothing to apply")

        return cls(
            action_name=action_name,
            preview=message,
            resolved_args=resolved_args,
            apply=refuse,
            data=data or {},
            noop_message=message,
        )

    @property
    def noop(self) -> bool:
        """Whether the plan has nothing to apply."""
        return self.noop_message is not None

    @property
    def fingerprint(self) -> str:
        """Digest of what the preview was based on."""
        return canonical_hash(self.resolved_args, self.state)

    def ticket_id(self, scope: Scope) -> str:
        """Identity of this action for the caller: hash of tool, resolved args and scope."""
        return canonical_hash(self.action_name, self.resolved_args, scope.to_dict())


@dataclass(frozen=True)
class ActionTicket:
    """Record of a preview shown to a caller, awaiting confirmation."""

    ticket_id: str
    tool_name: str
    resolved_args: dict[str, Any]
    scope: Scope
    fingerprint: str
    expires_at: float
