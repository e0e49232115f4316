"""Concurrent fan-out/fan-in of the tool calls requested in one model turn."""

import asyncio
import time

from project_assistant.governance.models import CallerContext
from project_assistant.telemetry import (
    DISPATCH_CEILING_REACHED,
    DISPATCH_COMPLETED,
    DISPATCH_STARTED,
    TOOL_CALL_FAILED,
    TraceContext,
    get_logger,
)
from project_assistant.tools.executor import ToolExecutor
from project_assistant.tools.types import ToolErrorKind, ToolInvocation, ToolResult

log = get_logger(__name__)


class DispatchScheduler:
    """Runs a batch of tool invocations concurrently under a turn ceiling.

    Each invocation is isolated: a failure or timeout in one never cancels
    or delays its siblings. Results come back in request order, one per
    invocation.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        ceiling_seconds: float = 8.0,
        max_concurrency: int = 10,
    ) -> None:
        """Initialize the scheduler.

        Args:
            executor: Runs individual invocations.
            ceiling_seconds: Wall-clock bound for a whole dispatch.
            max_concurrency: Cap on in-flight calls per dispatch.
        """
        if ceiling_seconds <= 0:
            raise ValueError("ceiling_seconds must be positive")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.executor = executor
        self.ceiling_seconds = ceiling_seconds
        self.max_concurrency = max_concurrency
        self._detached: set[asyncio.Task[ToolResult]] = set()

    async def dispatch(
        self,
        invocations: list[ToolInvocation],
        caller: CallerContext,
        trace_ctx: TraceContext | None = None,
    ) -> list[ToolResult]:
        """Execute all invocations and return their results in request order.

        Invocations still pending when the ceiling expires are reported as
        ``Timeout``. Pending reads are cancelled. Pending actions that have
        already started are left to finish in the background (never retried);
        ones that have not started yet are cancelled.

        Args:
            invocations: Tool calls requested by the model this turn.
            caller: Caller on whose behalf the tools run.
            trace_ctx: Trace context for telemetry.

        Returns:
            Exactly one ToolResult per invocation, in the same order.
        """
        if not invocations:
            return []

        trace_ctx = trace_ctx or TraceContext.new_trace()
        semaphore = asyncio.Semaphore(min(len(invocations), self.max_concurrency))
        started: set[int] = set()
        start_time = time.perf_counter()

        log.info(
            DISPATCH_STARTED,
            tool_count=len(invocations),
            tools=[inv.tool_name for inv in invocations],
            **trace_ctx.log_fields(),
        )

        async def run_one(index: int, invocation: ToolInvocation) -> ToolResult:
            async with semaphore:
                started.add(index)
                return await self.executor.execute(invocation, caller, trace_ctx)

        tasks = [
            asyncio.create_task(run_one(i, inv), name=f"tool:{inv.tool_name}:{inv.correlation_id}")
            for i, inv in enumerate(invocations)
        ]
        _, pending = await asyncio.wait(tasks, timeout=self.ceiling_seconds)

        if pending:
            log.warning(
                DISPATCH_CEILING_REACHED,
                ceiling_seconds=self.ceiling_seconds,
                pending=len(pending),
                **trace_ctx.log_fields(),
            )

        results: list[ToolResult] = []
        for index, (invocation, task) in enumerate(zip(invocations, tasks)):
            if task in pending:
                self._abandon(index, invocation, task, started)
                results.append(
                    ToolResult.failure(
                        invocation,
                        ToolErrorKind.TIMEOUT,
                        f"{invocation.tool_name} did not complete within the "
                        f"{self.ceiling_seconds:g}s turn limit",
                        latency_ms=self.ceiling_seconds * 1000,
                    )
                )
                continue

            exc = None if task.cancelled() else task.exception()
            if task.cancelled() or exc is not None:
                log.error(
                    TOOL_CALL_FAILED,
                    tool_name=invocation.tool_name,
                    correlation_id=invocation.correlation_id,
                    error=str(exc) if exc else "cancelled",
                    exc_info=exc,
                    **trace_ctx.log_fields(),
                )
                results.append(
                    ToolResult.failure(
                        invocation,
                        ToolErrorKind.UPSTREAM_ERROR,
                        f"{invocation.tool_name} failed unexpectedly",
                    )
                )
                continue

            results.append(task.result())

        log.info(
            DISPATCH_COMPLETED,
            tool_count=len(results),
            failed=sum(1 for r in results if not r.ok),
            duration_ms=(time.perf_counter() - start_time) * 1000,
            **trace_ctx.log_fields(),
        )
        return results

    def _abandon(
        self,
        index: int,
        invocation: ToolInvocation,
        task: "asyncio.Task[ToolResult]",
        started: set[int],
    ) -> None:
        spec = self.executor.registry.get_spec(invocation.tool_name)
        if spec is not None and spec.mutating and index in started:
            self._detached.add(task)
            task.add_done_callback(self._detached.discard)
            return
        task.cancel()

    @property
    def detached_count(self) -> int:
        """Action calls abandoned at the ceiling that are still running."""
        return len(self._detached)
