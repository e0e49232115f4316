"""High-level orchestrator API.

One chat turn: admission (role check and rate limit), routing, then either a
local answer, a single streaming pass, or the bounded tool-calling loop.
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

import orjson

from project_assistant.governance.permissions import PermissionGate
from project_assistant.governance.rate_limiter import RateDecision, RateLimiter
from project_assistant.llm_client.cost_tracker import UsageAccountant
from project_assistant.llm_client.provider import ModelProvider
from project_assistant.llm_client.types import (
    ModelClientError,
    ModelResponse,
    ModelTier,
    ToolCall,
)
from project_assistant.orchestrator.conversation import apply_history_window, to_model_messages
from project_assistant.orchestrator.errors import ForbiddenError, RateLimitedError
from project_assistant.orchestrator.prompts import build_system_prompt
from project_assistant.orchestrator.routing import ResponseRouter
from project_assistant.orchestrator.types import (
    ChatResult,
    ConversationRequest,
    RoutePath,
    RoutingResult,
    TurnUsage,
)
from project_assistant.telemetry import (
    LOCAL_ANSWER_SERVED,
    ORCHESTRATOR_FATAL_ERROR,
    REPLY_READY,
    REQUEST_RECEIVED,
    REQUEST_REJECTED,
    REQUEST_TIMING,
    TOOL_LOOP_EXHAUSTED,
    RequestTimer,
    TraceContext,
    get_logger,
)
from project_assistant.tools.dispatch import DispatchScheduler
from project_assistant.tools.registry import ToolRegistry
from project_assistant.tools.types import ToolInvocation, ToolResult

log = get_logger(__name__)

STREAM_INTERRUPTED_NOTICE = "\n\n[The response was interrupted. Please try again.]"


def _tool_message(result: ToolResult) -> dict[str, Any]:
    return {
        "role": "tool",
        "tool_call_id": result.correlation_id,
        "name": result.tool_name,
        "content": orjson.dumps(result.model_content(), default=str).decode(),
    }


def _invocation(call: ToolCall) -> ToolInvocation:
    if call.get("id"):
        return ToolInvocation(tool_name=call["name"], args=call["arguments"], correlation_id=call["id"])
    return ToolInvocation(tool_name=call["name"], args=call["arguments"])


def _pending_action(result: ToolResult) -> dict[str, Any] | None:
    payload = result.payload
    if not result.ok or not isinstance(payload, dict) or not payload.get("requiresConfirmation"):
        return None
    return {
        "actionName": payload.get("actionName", result.tool_name),
        "preview": payload.get("preview"),
        "params": payload.get("params", {}),
        "ticketId": payload.get("ticketId"),
    }


def fallback_reply_from_tool_results(results: list[ToolResult]) -> str:
    """Build a safe, user-facing reply when the model fails to produce one after tools."""
    if not results:
        return (
            "I couldn't produce a final answer for that request. "
            "Try rephrasing it or asking about one item at a time."
        )

    lines: list[str] = ["I gathered some information but couldn't finish the answer. Latest results:"]
    for result in results[-3:]:
        pending = _pending_action(result)
        if pending and pending["preview"]:
            lines.append(f"- {result.tool_name}: awaiting your confirmation\n{pending['preview']}")
        elif result.ok:
            lines.append(f"- {result.tool_name}: success")
        else:
            message = result.error.message if result.error else "Unknown error"
            lines.append(f"- {result.tool_name}: failed ({message})")
    return "\n".join(lines)


@dataclass
class ChatStream:
    """An opened streaming reply.

    Admission and routing have already happened when this is returned, so
    boundary errors surface before any body is sent.
    """

    chunks: AsyncIterator[str]
    path: RoutePath
    trace_id: str
    rate_limit_remaining: int | None = None


@dataclass
class _TurnState:
    trace_ctx: TraceContext
    timer: RequestTimer
    decision: RoutingResult
    admission: RateDecision
    usage: TurnUsage
    tool_results: list[ToolResult]


class Orchestrator:
    """Entry point for chat turns.

    All process-wide state (cache, limiter, ledger, accountant) lives in the
    injected collaborators, so separate instances never share state.
    """

    def __init__(
        self,
        router: ResponseRouter,
        provider: ModelProvider,
        registry: ToolRegistry,
        scheduler: DispatchScheduler,
        gate: PermissionGate,
        rate_limiter: RateLimiter,
        accountant: UsageAccountant,
        max_tool_iterations: int = 5,
        history_max_tokens: int = 8000,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            router: Chooses the answer path.
            provider: Model backend for both tiers.
            registry: Tools offered to the model on the standard path.
            scheduler: Runs each batch of tool calls.
            gate: Permission matrix (role check at admission).
            rate_limiter: Per-caller admission control.
            accountant: Usage and cost totals.
            max_tool_iterations: Model/tool round trips before falling back.
            history_max_tokens: Estimated token budget for replayed history.
            today: Date source for prompts.
        """
        self.router = router
        self.provider = provider
        self.registry = registry
        self.scheduler = scheduler
        self.gate = gate
        self.rate_limiter = rate_limiter
        self.accountant = accountant
        self.max_tool_iterations = max_tool_iterations
        self.history_max_tokens = history_max_tokens
        self._today = today

    def admit(self, request: ConversationRequest, trace_ctx: TraceContext) -> RateDecision:
        """Check the caller's role and count the request against their rate window.

        Raises:
            ForbiddenError: If the role is not in the permission matrix.
            RateLimitedError: If the caller's window is exhausted.
        """
        caller = request.caller
        if not self.gate.is_known_role(caller.role):
            log.warning(
                REQUEST_REJECTED,
                reason="unknown_role",
                role=caller.role,
                user_id=caller.user_id,
                **trace_ctx.log_fields(),
            )
            raise ForbiddenError(f"Role '{caller.role}' is not permitted to use the assistant")

        admission = self.rate_limiter.admit(caller.user_id)
        if not admission.allowed:
            log.warning(
                REQUEST_REJECTED,
                reason="rate_limited",
                user_id=caller.user_id,
                retry_after_seconds=admission.retry_after_seconds,
                **trace_ctx.log_fields(),
            )
            raise RateLimitedError(admission.retry_after_seconds, admission.remaining)
        return admission

    def _start_turn(self, request: ConversationRequest, trace_ctx: TraceContext | None) -> _TurnState:
        trace_ctx = trace_ctx or TraceContext.new_trace()
        timer = RequestTimer(trace_id=trace_ctx.trace_id)
        log.info(
            REQUEST_RECEIVED,
            user_id=request.caller.user_id,
            project_id=request.caller.project_id,
            message_count=len(request.messages),
            has_snapshot=request.snapshot is not None,
            **trace_ctx.log_fields(),
        )
        with timer.span("admission"):
            admission = self.admit(request, trace_ctx)
        with timer.span("routing") as span:
            decision = self.router.route(request)
            span["path"] = decision["path"].value
        return _TurnState(
            trace_ctx=trace_ctx,
            timer=timer,
            decision=decision,
            admission=admission,
            usage=TurnUsage(),
            tool_results=[],
        )

    def _finish_turn(self, state: _TurnState, text: str) -> None:
        path = state.decision["path"]
        self.accountant.record_turn(path.value)
        log.info(
            REPLY_READY,
            path=path.value,
            reply_length=len(text),
            model_calls=state.usage.model_calls,
            cost_usd=round(state.usage.cost_usd, 6),
            tools_called=[r.tool_name for r in state.tool_results],
            **state.trace_ctx.log_fields(),
        )
        log.info(REQUEST_TIMING, **state.timer.summary())

    def _record_usage(self, state: _TurnState, tier: ModelTier, input_tokens: int, output_tokens: int) -> None:
        cost = self.accountant.record(tier, input_tokens, output_tokens)
        state.usage.add(input_tokens, output_tokens, cost)

    def _messages(self, request: ConversationRequest, trace_ctx: TraceContext) -> list[dict[str, Any]]:
        return apply_history_window(
            to_model_messages(request.messages),
            self.history_max_tokens,
            trace_id=trace_ctx.trace_id,
        )

    def _system_prompt(self, request: ConversationRequest, with_tools: bool) -> str:
        return build_system_prompt(
            request.caller, request.snapshot, with_tools=with_tools, today=self._today()
        )

    def _result(self, state: _TurnState, text: str) -> ChatResult:
        pending = [p for p in (_pending_action(r) for r in state.tool_results) if p]
        return ChatResult(
            text=text,
            usage=state.usage,
            tools_used=bool(state.tool_results),
            tools_called=[r.tool_name for r in state.tool_results],
            path_taken=state.decision["path"],
            pending_actions=pending,
            trace_id=state.trace_ctx.trace_id,
            rate_limit_remaining=state.admission.remaining,
        )

    async def handle(
        self, request: ConversationRequest, trace_ctx: TraceContext | None = None
    ) -> ChatResult:
        """Answer one chat turn.

        Args:
            request: Conversation, caller and optional snapshot.
            trace_ctx: Trace context from the entry point, if any.

        Returns:
            ChatResult with reply text, usage and route taken.

        Raises:
            RequestRejectedError: On boundary failures (role, rate limit).
            ModelClientError: When the model backend fails.
        """
        state = self._start_turn(request, trace_ctx)
        path = state.decision["path"]

        if path is RoutePath.LOCAL:
            text = state.decision["local_answer"] or ""
            log.info(LOCAL_ANSWER_SERVED, reason=state.decision["reason"], **state.trace_ctx.log_fields())
        elif path is RoutePath.STREAMING:
            text = await self._run_single_pass(request, state)
        else:
            text = await self._run_tool_loop(request, state)

        self._finish_turn(state, text)
        return self._result(state, text)

    async def open_stream(
        self, request: ConversationRequest, trace_ctx: TraceContext | None = None
    ) -> ChatStream:
        """Admit, route and open a streaming reply.

        The Standard path runs its tool loop before returning and streams the
        final text. The Streaming path waits for the first chunk, so a model
        that cannot be reached surfaces as an error rather than an empty body.

        Raises:
            RequestRejectedError: On boundary failures (role, rate limit).
            ModelClientError: When the model backend fails before any text.
        """
        state = self._start_turn(request, trace_ctx)
        path = state.decision["path"]

        if path is RoutePath.STREAMING:
            chunks = await self._open_model_stream(request, state)
        else:
            if path is RoutePath.LOCAL:
                text = state.decision["local_answer"] or ""
                log.info(LOCAL_ANSWER_SERVED, reason=state.decision["reason"], **state.trace_ctx.log_fields())
            else:
                text = await self._run_tool_loop(request, state)
            chunks = self._emit_text(state, text)

        return ChatStream(
            chunks=chunks,
            path=path,
            trace_id=state.trace_ctx.trace_id,
            rate_limit_remaining=state.admission.remaining,
        )

    async def _emit_text(self, state: _TurnState, text: str) -> AsyncIterator[str]:
        yield text
        self._finish_turn(state, text)

    async def _run_single_pass(self, request: ConversationRequest, state: _TurnState) -> str:
        """Streaming path without a streaming client: collect the whole reply."""
        parts: list[str] = []
        stream = await self._open_model_stream(request, state, finish=False)
        async for chunk in stream:
            parts.append(chunk)
        return "".join(parts)

    async def _open_model_stream(
        self, request: ConversationRequest, state: _TurnState, finish: bool = True
    ) -> AsyncIterator[str]:
        tier = state.decision["tier"] or ModelTier.STREAMING
        events = self.provider.stream(
            tier,
            self._messages(request, state.trace_ctx),
            system=self._system_prompt(request, with_tools=False),
            trace_ctx=state.trace_ctx,
        )
        try:
            first = await anext(events)
        except StopAsyncIteration:
            first = None
        except ModelClientError as e:
            log.error(
                ORCHESTRATOR_FATAL_ERROR,
                path=RoutePath.STREAMING.value,
                error_type=type(e).__name__,
                error=str(e),
                **state.trace_ctx.log_fields(),
            )
            raise
        return self._relay(state, tier, events, first, finish)

    async def _relay(
        self,
        state: _TurnState,
        tier: ModelTier,
        events: AsyncIterator[Any],
        first: Any,
        finish: bool,
    ) -> AsyncIterator[str]:
        """Forward text events to the caller and account for the final usage event."""
        parts: list[str] = []

        def consume(event: Any) -> str | None:
            if event["type"] == "usage":
                usage = event["data"]
                self._record_usage(state, tier, usage["input_tokens"], usage["output_tokens"])
                return None
            return event["data"]

        with state.timer.span("model_stream", tier=tier.value):
            if first is not None:
                text = consume(first)
                if text:
                    parts.append(text)
                    yield text
            try:
                async for event in events:
                    text = consume(event)
                    if text:
                        parts.append(text)
                        yield text
            except ModelClientError as e:
                log.error(
                    ORCHESTRATOR_FATAL_ERROR,
                    path=RoutePath.STREAMING.value,
                    error_type=type(e).__name__,
                    error=str(e),
                    streamed_chars=sum(len(p) for p in parts),
                    **state.trace_ctx.log_fields(),
                )
                parts.append(STREAM_INTERRUPTED_NOTICE)
                yield STREAM_INTERRUPTED_NOTICE

        if finish:
            self._finish_turn(state, "".join(parts))

    async def _respond(
        self,
        state: _TurnState,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[dict[str, Any]],
        iteration: int,
    ) -> ModelResponse:
        with state.timer.span("model_call", tier=ModelTier.STANDARD.value, iteration=iteration):
            try:
                response = await self.provider.respond(
                    ModelTier.STANDARD,
                    messages,
                    system=system,
                    tools=tools,
                    trace_ctx=state.trace_ctx,
                )
            except ModelClientError as e:
                log.error(
                    ORCHESTRATOR_FATAL_ERROR,
                    path=RoutePath.STANDARD.value,
                    iteration=iteration,
                    error_type=type(e).__name__,
                    error=str(e),
                    **state.trace_ctx.log_fields(),
                )
                raise
        self._record_usage(
            state,
            ModelTier.STANDARD,
            response["usage"]["input_tokens"],
            response["usage"]["output_tokens"],
        )
        return response

    async def _run_tool_loop(self, request: ConversationRequest, state: _TurnState) -> str:
        """Standard path: call the model, run requested tools, feed results back.

        Bounded by ``max_tool_iterations`` model calls that request tools; when
        the bound is reached the reply is built from the latest tool results.
        """
        messages = self._messages(request, state.trace_ctx)
        system = self._system_prompt(request, with_tools=True)
        tools = self.registry.get_tool_definitions_for_llm()

        for iteration in range(1, self.max_tool_iterations + 1):
            response = await self._respond(state, messages, system, tools, iteration)
            tool_calls = response["tool_calls"]
            if not tool_calls:
                return response["content"] or fallback_reply_from_tool_results(state.tool_results)

            invocations = [_invocation(call) for call in tool_calls]
            messages.append(
                {
                    "role": "assistant",
                    "content": response["content"],
                    "tool_calls": [
                        ToolCall(id=inv.correlation_id, name=inv.tool_name, arguments=inv.args)
                        for inv in invocations
                    ],
                }
            )

            with state.timer.span("dispatch", iteration=iteration, tool_count=len(invocations)):
                results = await self.scheduler.dispatch(
                    invocations, request.caller, state.trace_ctx
                )
            state.tool_results.extend(results)
            messages.extend(_tool_message(result) for result in results)

        log.warning(
            TOOL_LOOP_EXHAUSTED,
            max_iterations=self.max_tool_iterations,
            tool_calls=len(state.tool_results),
            **state.trace_ctx.log_fields(),
        )
        return fallback_reply_from_tool_results(state.tool_results)
