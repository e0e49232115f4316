"""Tool execution layer with permission checks, caching, retries and telemetry.

This module provides the ToolExecutor class that runs a single tool
invocation: lookup, argument validation, capability check, then either the
confirmation protocol (action tools) or a cached, retried provider call
(read tools). Every path ends in a ToolResult; nothing is raised to the
caller.
"""

import asyncio
import functools
import time
from typing import TYPE_CHECKING, Any

from project_assistant.data.provider import DataProviderError, DataProviderTimeout
from project_assistant.governance.models import CallerContext, Scope
from project_assistant.governance.permissions import PermissionGate
from project_assistant.security import sanitize_error_message
from project_assistant.telemetry import (
    POLICY_VIOLATION,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_RETRY,
    TOOL_CALL_STARTED,
    TraceContext,
    get_logger,
)
from project_assistant.tools.cache import ToolResultCache
from project_assistant.tools.registry import ReadHandler, ToolHandler, ToolRegistry
from project_assistant.tools.types import (
    ToolError,
    ToolErrorKind,
    ToolInvocation,
    ToolResult,
    ToolSpec,
    ToolTimeoutError,
    ToolValidationError,
    UpstreamError,
)
from project_assistant.tools.validation import validate_arguments

if TYPE_CHECKING:
    from project_assistant.actions.confirmation import ConfirmationProtocol

log = get_logger(__name__)


def classify_exception(exc: BaseException) -> ToolError | None:
    """Map a handler exception onto the ToolError taxonomy.

    Returns:
        The matching ToolError, or None for unexpected exceptions.
    """
    if isinstance(exc, ToolError):
        return exc
    if isinstance(exc, (DataProviderTimeout, asyncio.TimeoutError)):
        return ToolTimeoutError(str(exc) or "Data provider call timed out")
    if isinstance(exc, DataProviderError):
        return UpstreamError(str(exc), transient=exc.transient)
    return None


def _is_retryable(error: ToolError) -> bool:
    if isinstance(error, ToolTimeoutError):
        return True
    return isinstance(error, UpstreamError) and error.transient


class ToolExecutor:
    """Runs one tool invocation under governance and observability."""

    def __init__(
        self,
        registry: ToolRegistry,
        gate: PermissionGate,
        cache: ToolResultCache,
        confirmation: "ConfirmationProtocol",
        default_timeout_seconds: float = 4.0,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.2,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Registered tools.
            gate: Capability checks.
            cache: Result cache for cacheable tools.
            confirmation: Two-phase protocol that drives action tools.
            default_timeout_seconds: Per-call timeout when a spec sets none.
            max_retries: Retries for read tools on retryable failures.
            retry_backoff_seconds: Base of the exponential backoff.
        """
        self.registry = registry
        self.gate = gate
        self.cache = cache
        self.confirmation = confirmation
        self.default_timeout_seconds = default_timeout_seconds
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._detached: set[asyncio.Task[Any]] = set()

    def _timeout_for(self, spec: ToolSpec) -> float:
        return spec.timeout_seconds or self.default_timeout_seconds

    async def execute(
        self,
        invocation: ToolInvocation,
        caller: CallerContext,
        trace_ctx: TraceContext | None = None,
    ) -> ToolResult:
        """Execute a tool with full governance and observability.

        Args:
            invocation: Tool name, raw arguments and correlation id.
            caller: Who is asking; supplies capabilities and scope.
            trace_ctx: Trace context for telemetry.

        Returns:
            ToolResult with execution outcome (never raises).
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()
        tool_name = invocation.tool_name

        # 1. Retrieve tool
        entry = self.registry.get_tool(tool_name)
        if entry is None:
            available = self.registry.list_tool_names()
            log.warning(TOOL_CALL_FAILED, tool_name=tool_name, error="unknown_tool", **trace_ctx.log_fields())
            return ToolResult.failure(
                invocation,
                ToolErrorKind.UNKNOWN_TOOL,
                f"Tool '{tool_name}' not found. Available: {available}",
            )
        spec, handler = entry

        # 2. Validate arguments
        try:
            args = validate_arguments(spec, invocation.args)
        except ToolValidationError as e:
            log.warning(TOOL_CALL_FAILED, tool_name=tool_name, error=e.message, **trace_ctx.log_fields())
            return ToolResult.failure(invocation, e.kind, e.message, e.details)

        # 3. Check permissions (re-checked on every call, confirmations included)
        permission = self.gate.check(caller, spec.required_capability)
        if not permission:
            log.warning(
                POLICY_VIOLATION,
                tool_name=tool_name,
                reason=permission.reason,
                user_id=caller.user_id,
                role=caller.role,
                **trace_ctx.log_fields(),
            )
            return ToolResult.failure(
                invocation, ToolErrorKind.PERMISSION_DENIED, permission.reason
            )

        scope = caller.scope()
        span_ctx, span_id = trace_ctx.new_span()
        log.info(
            TOOL_CALL_STARTED,
            tool_name=tool_name,
            correlation_id=invocation.correlation_id,
            arguments=args,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        start_time = time.perf_counter()
        cached = False
        try:
            if spec.mutating:
                payload = await self._run_action(spec, handler, args, scope, span_ctx)
            else:
                payload, cached = await self._run_read(spec, handler, args, scope, span_ctx)
        except Exception as exc:
            latency_ms = (time.perf_counter() - start_time) * 1000
            error = classify_exception(exc)
            if error is None:
                log.error(
                    TOOL_CALL_FAILED,
                    tool_name=tool_name,
                    error=str(exc),
                    latency_ms=latency_ms,
                    trace_id=trace_ctx.trace_id,
                    span_id=span_id,
                    exc_info=True,
                )
                return ToolResult.failure(
                    invocation,
                    ToolErrorKind.UPSTREAM_ERROR,
                    sanitize_error_message(exc),
                    latency_ms=latency_ms,
                )

            log.warning(
                TOOL_CALL_FAILED,
                tool_name=tool_name,
                error_kind=error.kind.value,
                error=error.message,
                latency_ms=latency_ms,
                trace_id=trace_ctx.trace_id,
                span_id=span_id,
            )
            return ToolResult.failure(
                invocation, error.kind, error.message, error.details, latency_ms=latency_ms
            )

        latency_ms = (time.perf_counter() - start_time) * 1000
        log.info(
            TOOL_CALL_COMPLETED,
            tool_name=tool_name,
            correlation_id=invocation.correlation_id,
            cached=cached,
            latency_ms=latency_ms,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )
        return ToolResult.success(invocation, payload, latency_ms=latency_ms, cached=cached)

    async def _run_read(
        self,
        spec: ToolSpec,
        handler: ToolHandler,
        args: dict[str, Any],
        scope: Scope,
        trace_ctx: TraceContext,
    ) -> tuple[Any, bool]:
        if spec.cacheable:
            hit = self.cache.lookup(spec.name, args, scope)
            if hit is not None:
                return hit.value, True

        read: ReadHandler = handler  # type: ignore[assignment]
        timeout = self._timeout_for(spec)
        attempt = 0
        while attempt <= self.max_retries:
            try:
                payload = await asyncio.wait_for(read(args, scope), timeout=timeout)
                break
            except Exception as exc:
                error = classify_exception(exc)
                if error is None:
                    raise
                if isinstance(exc, asyncio.TimeoutError):
                    error = ToolTimeoutError(f"{spec.name} timed out after {timeout:g}s")
                if not _is_retryable(error) or attempt >= self.max_retries:
                    raise error from exc

                delay = self.retry_backoff_seconds * (2**attempt)
                log.warning(
                    TOOL_CALL_RETRY,
                    tool_name=spec.name,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error_kind=error.kind.value,
                    delay_seconds=delay,
                    **trace_ctx.log_fields(),
                )
                await asyncio.sleep(delay)
                attempt += 1

        # No cache write on failure: only reached after a successful call
        if spec.cacheable:
            self.cache.store(spec.name, args, scope, payload)
        return payload, False

    async def _run_action(
        self,
        spec: ToolSpec,
        handler: ToolHandler,
        args: dict[str, Any],
        scope: Scope,
        trace_ctx: TraceContext,
    ) -> dict[str, Any]:
        timeout = self._timeout_for(spec)
        # Shielded so a timeout abandons the wait, never a half-applied mutation
        task = asyncio.ensure_future(
            self.confirmation.run(spec.name, handler, args, scope, trace_ctx)  # type: ignore[arg-type]
        )
        self._detached.add(task)
        task.add_done_callback(functools.partial(self._settle, scope.partition))
        try:
            payload = await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolTimeoutError(
                f"{spec.name} did not finish within {timeout:g}s; its outcome is unknown. "
                "Check the item before trying again."
            ) from None

        if payload.get("success") is True:
            self.cache.invalidate_partition(scope.partition)
        return payload

    def _settle(self, partition: str, task: "asyncio.Task[Any]") -> None:
        self._detached.discard(task)
        if task.cancelled() or task.exception() is not None:
            return
        # Abandoned mutations that finish late still make cached reads stale
        result = task.result()
        if isinstance(result, dict) and result.get("success") is True:
            self.cache.invalidate_partition(partition)

    @property
    def in_flight_actions(self) -> int:
        """Action calls still running, including ones abandoned after a timeout."""
        return len(self._detached)
