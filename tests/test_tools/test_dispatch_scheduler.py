"""Tests for concurrent tool dispatch under a turn ceiling."""

import asyncio
import time

import pytest

from project_assistant.actions.confirmation import ConfirmationLedger, ConfirmationProtocol
from project_assistant.governance.models import Scope, default_permissions_config
from project_assistant.governance.permissions import PermissionGate
from project_assistant.tools.cache import ToolResultCache
from project_assistant.tools.dispatch import DispatchScheduler
from project_assistant.tools.executor import ToolExecutor
from project_assistant.tools.registry import ToolRegistry
from project_assistant.tools.types import (
    ToolErrorKind,
    ToolInvocation,
    ToolParameter,
    ToolSpec,
)


def _sleeper(seconds: float):
    async def handler(args: dict, scope: Scope) -> dict:
        await asyncio.sleep(seconds)
        return {"slept": seconds, "label": args.get("label")}

    return handler


async def _fails(args: dict, scope: Scope) -> dict:
    raise RuntimeError("handler bug")


_LABEL = [ToolParameter(name="label", type="string", description="Label", required=False)]


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(ToolSpec(name="fast", description="Fast", parameters=_LABEL), _sleeper(0.1))
    registry.register(
        ToolSpec(name="hang", description="Never returns in time", timeout_seconds=10), _sleeper(5)
    )
    registry.register(ToolSpec(name="fails", description="Always fails"), _fails)
    return registry


@pytest.fixture
def executor(registry) -> ToolExecutor:
    return ToolExecutor(
        registry=registry,
        gate=PermissionGate(default_permissions_config()),
        cache=ToolResultCache(),
        confirmation=ConfirmationProtocol(ConfirmationLedger()),
        default_timeout_seconds=10,
        max_retries=0,
    )


@pytest.mark.asyncio
async def test_results_in_request_order_and_concurrent(executor, caller) -> None:
    """Three 100ms calls finish together, not in 300ms, and keep their order."""
    scheduler = DispatchScheduler(executor, ceiling_seconds=2)
    invocations = [ToolInvocation(tool_name="fast", args={"label": str(i)}) for i in range(3)]

    start = time.perf_counter()
    results = await scheduler.dispatch(invocations, caller)
    elapsed = time.perf_counter() - start

    assert [r.payload["label"] for r in results] == ["0", "1", "2"]
    assert [r.correlation_id for r in results] == [i.correlation_id for i in invocations]
    assert elapsed < 0.25


@pytest.mark.asyncio
async def test_one_timeout_does_not_affect_siblings(executor, caller) -> None:
    """N invocations with one hanging yield N-1 results plus one Timeout."""
    scheduler = DispatchScheduler(executor, ceiling_seconds=0.5)
    invocations = [
        ToolInvocation(tool_name="fast"),
        ToolInvocation(tool_name="hang"),
        ToolInvocation(tool_name="fast"),
        ToolInvocation(tool_name="fast"),
    ]

    start = time.perf_counter()
    results = await scheduler.dispatch(invocations, caller)
    elapsed = time.perf_counter() - start

    assert len(results) == 4
    assert [r.ok for r in results] == [True, False, True, True]
    assert results[1].error_kind is ToolErrorKind.TIMEOUT
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_failure_isolated(executor, caller) -> None:
    scheduler = DispatchScheduler(executor, ceiling_seconds=2)

    results = await scheduler.dispatch(
        [ToolInvocation(tool_name="fails"), ToolInvocation(tool_name="fast")], caller
    )

    assert results[0].error_kind is ToolErrorKind.UPSTREAM_ERROR
    assert results[1].ok


@pytest.mark.asyncio
async def test_concurrency_cap(executor, caller) -> None:
    """With a cap of one the calls run back to back."""
    scheduler = DispatchScheduler(executor, ceiling_seconds=2, max_concurrency=1)

    start = time.perf_counter()
    results = await scheduler.dispatch([ToolInvocation(tool_name="fast") for _ in range(3)], caller)

    assert all(r.ok for r in results)
    assert time.perf_counter() - start >= 0.28


@pytest.mark.asyncio
async def test_empty_batch(executor, caller) -> None:
    assert await DispatchScheduler(executor).dispatch([], caller) == []


def test_invalid_configuration(executor) -> None:
    with pytest.raises(ValueError):
        DispatchScheduler(executor, ceiling_seconds=0)
    with pytest.raises(ValueError):
        DispatchScheduler(executor, max_concurrency=0)


@pytest.mark.asyncio
async def test_started_action_detached_at_ceiling(services, caller, data_provider, monkeypatch) -> None:
    """An action still running at the ceiling is reported as Timeout and finishes once."""
    real_update = data_provider.update

    async def slow_update(*args, **kwargs) -> int:
        await asyncio.sleep(0.3)
        return await real_update(*args, **kwargs)

    await services.executor.execute(ToolInvocation(tool_name="submitAllTimesheets"), caller)
    monkeypatch.setattr(data_provider, "update", slow_update)
    scheduler = DispatchScheduler(services.executor, ceiling_seconds=0.1)

    results = await scheduler.dispatch(
        [ToolInvocation(tool_name="submitAllTimesheets", args={"confirmed": True})], caller
    )

    assert results[0].error_kind is ToolErrorKind.TIMEOUT
    assert scheduler.detached_count == 1

    await asyncio.sleep(0.5)

    assert scheduler.detached_count == 0
    assert data_provider.call_count("update", "timesheets") == 1
    status = {row["id"]: row["validation_status"] for row in data_provider.rows("timesheets")}
    assert status["T-1"] == "Submitted"
