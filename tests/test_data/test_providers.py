"""Tests for the in-memory and PostgREST data providers."""

import httpx
import pytest

from project_assistant.data.filters import Filter, eq
from project_assistant.data.memory import InMemoryDataProvider
from project_assistant.data.postgrest import PostgrestDataProvider, encode_filter
from project_assistant.data.provider import DataProviderError, DataProviderTimeout
from project_assistant.governance.models import Scope

SCOPE = Scope(tenant_id="T1", project_id="P1", user_id="u1", role="contributor", resource_id="R1")


@pytest.mark.asyncio
async def test_memory_select_is_scoped_to_project() -> None:
    """Rows of another project are never returned."""
    provider = InMemoryDataProvider(
        {
            "milestones": [
                {"id": "M1", "project_id": "P1", "name": "Mine"},
                {"id": "M9", "project_id": "P2", "name": "Theirs"},
            ]
        }
    )

    rows = await provider.select("milestones", SCOPE)

    assert [r["id"] for r in rows] == ["M1"]


@pytest.mark.asyncio
async def test_memory_select_order_and_limit(data_provider) -> None:
    rows = await data_provider.select("milestones", SCOPE, order_by="-forecast_end_date", limit=2)

    assert [r["id"] for r in rows] == ["M3", "M2"]


@pytest.mark.asyncio
async def test_memory_update_is_batched_and_scoped(data_provider) -> None:
    """One call updates every listed row in scope and reports the count."""
    updated = await data_provider.update(
        "timesheets", SCOPE, ["T-1", "T-2", "missing"], {"validation_status": "Submitted"}
    )

    assert updated == 2
    assert data_provider.call_count("update", "timesheets") == 1
    statuses = {r["id"]: r["validation_status"] for r in data_provider.rows("timesheets")}
    assert statuses["T-1"] == statuses["T-2"] == "Submitted"
    assert statuses["T-3"] == "Draft"


@pytest.mark.asyncio
async def test_memory_returns_copies(data_provider) -> None:
    """Mutating a returned row does not alter the store."""
    rows = await data_provider.select("milestones", SCOPE, [eq("id", "M1")])
    rows[0]["status"] = "Completed"

    again = await data_provider.select("milestones", SCOPE, [eq("id", "M1")])
    assert again[0]["status"] == "In Progress"


@pytest.mark.asyncio
async def test_memory_unknown_table() -> None:
    with pytest.raises(DataProviderError):
        await InMemoryDataProvider().select("nope", SCOPE)


def test_encode_filter() -> None:
    assert encode_filter(Filter("status", "in", ["Open", "In Progress"])) == (
        "status",
        "in.(Open,In Progress)",
    )
    assert encode_filter(eq("billable", True)) == ("billable", "eq.true")
    assert encode_filter(Filter("name", "ilike", "phase")) == ("name", "ilike.*phase*")
    assert encode_filter(eq("title", "a,b")) == ("title", 'eq."a,b"')


def _postgrest(handler) -> PostgrestDataProvider:
    client = httpx.AsyncClient(
        base_url="https://db.example.test/rest/v1", transport=httpx.MockTransport(handler)
    )
    return PostgrestDataProvider("https://db.example.test", "key", client=client)


@pytest.mark.asyncio
async def test_postgrest_select_builds_query() -> None:
    """Scope, filters, ordering and limit become query parameters."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "M1"}])

    provider = _postgrest(handler)
    rows = await provider.select("milestones", SCOPE, [eq("status", "Open")], order_by="-name", limit=5)
    await provider.aclose()

    assert rows == [{"id": "M1"}]
    params = seen[0].url.params
    assert seen[0].url.path == "/rest/v1/milestones"
    assert params["project_id"] == "eq.P1"
    assert params["status"] == "eq.Open"
    assert params["order"] == "name.desc"
    assert params["limit"] == "5"


@pytest.mark.asyncio
async def test_postgrest_update_single_patch() -> None:
    """Batched update is one PATCH with an id=in.(...) filter."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "T-1"}, {"id": "T-2"}])

    provider = _postgrest(handler)
    updated = await provider.update("timesheets", SCOPE, ["T-1", "T-2"], {"validation_status": "Submitted"})

    assert updated == 2
    assert len(seen) == 1
    assert seen[0].method == "PATCH"
    assert seen[0].url.params["id"] == "in.(T-1,T-2)"


@pytest.mark.asyncio
async def test_postgrest_error_mapping() -> None:
    """5xx is transient, 4xx is not, timeouts map to DataProviderTimeout."""

    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    def bad_request(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400)

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(DataProviderError) as exc_info:
        await _postgrest(server_error).select("milestones", SCOPE)
    assert exc_info.value.transient

    with pytest.raises(DataProviderError) as exc_info:
        await _postgrest(bad_request).select("milestones", SCOPE)
    assert not exc_info.value.transient

    with pytest.raises(DataProviderTimeout):
        await _postgrest(timeout).select("milestones", SCOPE)
