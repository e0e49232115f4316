"""Tests for ToolExecutor: governance, caching, retries and error mapping."""

import asyncio

import pytest

from project_assistant.actions.confirmation import ConfirmationLedger, ConfirmationProtocol
from project_assistant.data.provider import DataProviderError
from project_assistant.governance.models import Scope, default_permissions_config
from project_assistant.governance.permissions import PermissionGate
from project_assistant.tools.cache import ToolResultCache
from project_assistant.tools.executor import ToolExecutor
from project_assistant.tools.queries import register_query_tools
from project_assistant.tools.registry import ToolRegistry
from project_assistant.tools.types import (
    ToolErrorKind,
    ToolInvocation,
    ToolParameter,
    ToolSpec,
)


def _executor(registry: ToolRegistry, **kwargs) -> ToolExecutor:
    return ToolExecutor(
        registry=registry,
        gate=PermissionGate(default_permissions_config()),
        cache=ToolResultCache(ttl_seconds=300),
        confirmation=ConfirmationProtocol(ConfirmationLedger()),
        retry_backoff_seconds=0.0,
        **kwargs,
    )


@pytest.fixture
def query_executor(data_provider) -> ToolExecutor:
    registry = ToolRegistry()
    register_query_tools(registry, data_provider)
    return _executor(registry)


@pytest.mark.asyncio
async def test_read_tool_success(query_executor, caller) -> None:
    result = await query_executor.execute(ToolInvocation(tool_name="getMilestones", args={}), caller)

    assert result.ok
    assert result.payload["count"] == 3
    assert result.error is None
    assert result.latency_ms >= 0


@pytest.mark.asyncio
async def test_second_identical_call_served_from_cache(query_executor, caller, data_provider) -> None:
    """A repeat read within the TTL makes zero provider calls."""
    first = await query_executor.execute(ToolInvocation(tool_name="getMilestones", args={}), caller)
    calls_after_first = data_provider.call_count("select")

    second = await query_executor.execute(ToolInvocation(tool_name="getMilestones", args={}), caller)

    assert not first.cached
    assert second.cached
    assert second.payload == first.payload
    assert data_provider.call_count("select") == calls_after_first


@pytest.mark.asyncio
async def test_unknown_tool(query_executor, caller) -> None:
    result = await query_executor.execute(ToolInvocation(tool_name="dropTables", args={}), caller)

    assert not result.ok
    assert result.error_kind is ToolErrorKind.UNKNOWN_TOOL


@pytest.mark.asyncio
async def test_invalid_arguments(query_executor, caller) -> None:
    result = await query_executor.execute(
        ToolInvocation(tool_name="getMilestones", args={"status": "Abandoned"}), caller
    )

    assert result.error_kind is ToolErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_permission_denied_before_any_provider_call(make_caller, data_provider) -> None:
    """An unknown role never reaches the data provider."""
    registry = ToolRegistry()
    register_query_tools(registry, data_provider)
    executor = _executor(registry)

    result = await executor.execute(
        ToolInvocation(tool_name="getMilestones", args={}), make_caller(role="intern")
    )

    assert result.error_kind is ToolErrorKind.PERMISSION_DENIED
    assert data_provider.calls == []


@pytest.mark.asyncio
async def test_transient_failure_retried_then_succeeds(caller) -> None:
    attempts = 0

    async def flaky(args: dict, scope: Scope) -> dict:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise DataProviderError("connection reset", transient=True)
        return {"ok": True}

    registry = ToolRegistry()
    registry.register(ToolSpec(name="flaky", description="Flaky read"), flaky)
    executor = _executor(registry, max_retries=2)

    result = await executor.execute(ToolInvocation(tool_name="flaky", args={}), caller)

    assert result.ok
    assert attempts == 3


@pytest.mark.asyncio
async def test_permanent_failure_not_retried(caller) -> None:
    attempts = 0

    async def broken(args: dict, scope: Scope) -> dict:
        nonlocal attempts
        attempts += 1
        raise DataProviderError("bad request", transient=False)

    registry = ToolRegistry()
    registry.register(ToolSpec(name="broken", description="Broken read", cacheable=True), broken)
    executor = _executor(registry, max_retries=2)

    result = await executor.execute(ToolInvocation(tool_name="broken", args={}), caller)

    assert result.error_kind is ToolErrorKind.UPSTREAM_ERROR
    assert attempts == 1
    assert len(executor.cache) == 0


@pytest.mark.asyncio
async def test_read_timeout_reported(caller) -> None:
    async def slow(args: dict, scope: Scope) -> dict:
        await asyncio.sleep(1)
        return {}

    registry = ToolRegistry()
    registry.register(ToolSpec(name="slow", description="Slow read", timeout_seconds=0.01), slow)
    executor = _executor(registry, max_retries=0)

    result = await executor.execute(ToolInvocation(tool_name="slow", args={}), caller)

    assert result.error_kind is ToolErrorKind.TIMEOUT
    assert "timed out" in result.error.message


@pytest.mark.asyncio
async def test_unexpected_exception_is_sanitized(caller) -> None:
    """Internal details such as file paths do not leak into results."""

    async def crash(args: dict, scope: Scope) -> dict:
        raise RuntimeError("boom in /srv/app/secret.py line 42")

    registry = ToolRegistry()
    registry.register(
        ToolSpec(
            name="crash",
            description="Crashes",
            parameters=[ToolParameter(name="x", type="string", description="x", required=False)],
        ),
        crash,
    )
    executor = _executor(registry)

    result = await executor.execute(ToolInvocation(tool_name="crash", args={}), caller)

    assert result.error_kind is ToolErrorKind.UPSTREAM_ERROR
    assert "/srv" not in result.error.message


def _submit_all(confirmed: bool = False) -> ToolInvocation:
    args = {"confirmed": True} if confirmed else {}
    return ToolInvocation(tool_name="submitAllTimesheets", args=args)


@pytest.mark.asyncio
async def test_action_not_retried_on_transient_upstream_error(
    services, caller, data_provider, monkeypatch
) -> None:
    """A mutation that fails transiently is reported, never re-sent."""
    attempts = 0

    async def failing_update(*args, **kwargs) -> int:
        nonlocal attempts
        attempts += 1
        raise DataProviderError("connection reset", transient=True)

    assert services.executor.max_retries > 0
    await services.executor.execute(_submit_all(), caller)
    monkeypatch.setattr(data_provider, "update", failing_update)

    result = await services.executor.execute(_submit_all(confirmed=True), caller)

    assert result.error_kind is ToolErrorKind.UPSTREAM_ERROR
    assert attempts == 1


@pytest.mark.asyncio
async def test_action_timeout_leaves_outcome_unknown(
    make_services, caller, data_provider, monkeypatch
) -> None:
    """A slow mutation times out once, keeps running and lands exactly once."""
    services = make_services(tool_call_timeout_seconds=0.05)
    real_update = data_provider.update
    attempts = 0

    async def slow_update(*args, **kwargs) -> int:
        nonlocal attempts
        attempts += 1
        await asyncio.sleep(0.3)
        return await real_update(*args, **kwargs)

    await services.executor.execute(_submit_all(), caller)
    monkeypatch.setattr(data_provider, "update", slow_update)

    result = await services.executor.execute(_submit_all(confirmed=True), caller)

    assert result.error_kind is ToolErrorKind.TIMEOUT
    assert "outcome is unknown" in result.error.message
    assert attempts == 1
    assert services.executor.in_flight_actions == 1

    await asyncio.sleep(0.5)

    assert services.executor.in_flight_actions == 0
    assert attempts == 1
    assert data_provider.call_count("update", "timesheets") == 1
    status = {row["id"]: row["validation_status"] for row in data_provider.rows("timesheets")}
    assert status["T-1"] == "Submitted"
