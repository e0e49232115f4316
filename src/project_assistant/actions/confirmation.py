"""Two-phase confirmation protocol for mutating (action) tools.

An action call without ``confirmed: true`` only previews: the handler
resolves and validates its targets read-only, a ticket is recorded, and the
preview is returned. A call with ``confirmed: true`` re-runs the same
validation, must match an unexpired ticket with an identical fingerprint,
claims that ticket atomically and then applies the mutation exactly once.

Declining is implicit: the caller simply never confirms, and the ticket
expires.
"""

import threading
import time
from collections.abc import Callable
from typing import Any

from project_assistant.actions.types import ActionPlan, ActionTicket
from project_assistant.governance.models import Scope
from project_assistant.telemetry import (
    ACTION_CONFIRMED,
    ACTION_EXECUTED,
    ACTION_FAILED,
    ACTION_NOOP,
    ACTION_PREVIEW_ISSUED,
    ACTION_REJECTED,
    TraceContext,
    get_logger,
)
from project_assistant.tools.registry import ActionHandler
from project_assistant.tools.types import CONFIRMED_PARAM, ToolValidationError

log = get_logger(__name__)


class ConfirmationLedger:
    """Outstanding preview tickets and recently consumed ticket ids.

    The lock guards only the two maps; it is never held across an await.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the ledger.

        Args:
            ttl_seconds: How long a preview stays confirmable, and how long a
                consumed ticket id is remembered.
            clock: Monotonic time source (injected in tests).
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tickets: dict[str, ActionTicket] = {}
        self._consumed: dict[str, float] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        for ticket_id in [t for t, tk in self._tickets.items() if tk.expires_at <= now]:
            del self._tickets[ticket_id]
        for ticket_id in [t for t, exp in self._consumed.items() if exp <= now]:
            del self._consumed[ticket_id]

    def issue(self, plan: ActionPlan, scope: Scope) -> ActionTicket:
        """Record a preview shown to the caller.

        A fresh preview supersedes an earlier ticket for the same action and
        clears any consumed mark, since the user is being asked again.
        """
        now = self._clock()
        ticket = ActionTicket(
            ticket_id=plan.ticket_id(scope),
            tool_name=plan.action_name,
            resolved_args=dict(plan.resolved_args),
            scope=scope,
            fingerprint=plan.fingerprint,
            expires_at=now + self.ttl_seconds,
        )
        with self._lock:
            self._purge(now)
            self._tickets[ticket.ticket_id] = ticket
            self._consumed.pop(ticket.ticket_id, None)
        return ticket

    def claim(self, ticket_id: str, fingerprint: str) -> ActionTicket:
        """Atomically take the ticket for a confirmation.

        Exactly one concurrent claimant succeeds; the ticket id is then
        remembered as consumed until it would have expired.

        Raises:
            ToolValidationError: If there is no matching unexpired ticket,
                it was already confirmed, or the action changed since the
                preview.
        """
        now = self._clock()
        with self._lock:
            self._purge(now)
            if ticket_id in self._consumed:
                raise ToolValidationError(
                    "This action was already confirmed and carried out",
                    details={"reason": "already_confirmed"},
                )
            ticket = self._tickets.pop(ticket_id, None)
            if ticket is None:
                raise ToolValidationError(
                    "No matching preview is awaiting confirmation (it may have expired). "
                    "Show the user a new preview first.",
                    details={"reason": "no_preview"},
                )
            if ticket.fingerprint != fingerprint:
                raise ToolValidationError(
                    "The items have changed since the preview was shown. "
                    "Show the user a new preview before confirming.",
                    details={"reason": "stale_preview"},
                )
            self._consumed[ticket_id] = ticket.expires_at
        return ticket

    def pending_count(self) -> int:
        """Unexpired previews awaiting confirmation."""
        with self._lock:
            self._purge(self._clock())
            return len(self._tickets)

    def reset(self) -> None:
        """Forget every ticket (tests)."""
        with self._lock:
            self._tickets.clear()
            self._consumed.clear()


class ConfirmationProtocol:
    """Drives an action handler through preview and confirmation."""

    def __init__(self, ledger: ConfirmationLedger) -> None:
        """Initialize the protocol.

        Args:
            ledger: Ticket store shared by all requests in the process.
        """
        self.ledger = ledger

    async def run(
        self,
        tool_name: str,
        handler: ActionHandler,
        args: dict[str, Any],
        scope: Scope,
        trace_ctx: TraceContext | None = None,
    ) -> dict[str, Any]:
        """Preview or perform one action call.

        Args:
            tool_name: Action tool being invoked.
            handler: Its handler.
            args: Validated arguments, including the boolean ``confirmed``.
            scope: Caller scope.
            trace_ctx: Trace context for telemetry.

        Returns:
            A preview payload (``requiresConfirmation``), a no-op payload, or
            ``{"success": True, "message": ...}`` after the mutation.

        Raises:
            ToolError: Validation, NotFound or PermissionDenied from the
                handler, or Validation when the ticket check fails. Errors
                from the mutation itself propagate verbatim.
        """
        trace_fields = trace_ctx.log_fields() if trace_ctx else {}
        action_args = {k: v for k, v in args.items() if k != CONFIRMED_PARAM}
        confirmed = args.get(CONFIRMED_PARAM) is True

        plan = await handler.prepare(action_args, scope)

        if plan.noop:
            log.info(ACTION_NOOP, tool_name=tool_name, user_id=scope.user_id, **trace_fields)
            return {
                "requiresConfirmation": False,
                "preview": plan.noop_message,
                "actionName": plan.action_name,
                "data": plan.data,
            }

        if not confirmed:
            ticket = self.ledger.issue(plan, scope)
            log.info(
                ACTION_PREVIEW_ISSUED,
                tool_name=tool_name,
                ticket_id=ticket.ticket_id,
                user_id=scope.user_id,
                **trace_fields,
            )
            return {
                "requiresConfirmation": True,
                "preview": plan.preview,
                "actionName": plan.action_name,
                "params": plan.resolved_args,
                "data": plan.data,
                "ticketId": ticket.ticket_id,
            }

        ticket_id = plan.ticket_id(scope)
        try:
            self.ledger.claim(ticket_id, plan.fingerprint)
        except ToolValidationError as e:
            log.warning(
                ACTION_REJECTED,
                tool_name=tool_name,
                ticket_id=ticket_id,
                reason=e.details.get("reason"),
                user_id=scope.user_id,
                **trace_fields,
            )
            raise

        log.info(ACTION_CONFIRMED, tool_name=tool_name, ticket_id=ticket_id, **trace_fields)
        try:
            outcome = await plan.apply()
        except Exception as e:
            log.error(
                ACTION_FAILED,
                tool_name=tool_name,
                ticket_id=ticket_id,
                error=str(e),
                **trace_fields,
            )
            raise

        log.info(ACTION_EXECUTED, tool_name=tool_name, ticket_id=ticket_id, **trace_fields)
        result: dict[str, Any] = {"success": True, "message": outcome.message}
        if outcome.data:
            result["data"] = outcome.data
        return result
