"""PostgREST (Supabase REST) data provider over httpx."""

from typing import Any

import httpx

from project_assistant.data.filters import Filter
from project_assistant.data.provider import DataProviderError, DataProviderTimeout, Row
from project_assistant.governance.models import Scope
from project_assistant.telemetry import get_logger
from project_assistant.telemetry.events import DATA_PROVIDER_ERROR, DATA_PROVIDER_QUERY

log = get_logger(__name__)


def _quote(value: Any) -> str:
    text = str(value).lower() if isinstance(value, bool) else str(value)
    if any(ch in text for ch in ",()\""):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def encode_filter(f: Filter) -> tuple[str, str]:
    """Encode a Filter as a PostgREST query parameter.

    Example:
        >>> encode_filter(Filter("status", "in", ["Open", "In Progress"]))
        ('status', 'in.(Open,In Progress)')
    """
    if f.op == "in":
        return f.field, "in.(" + ",".join(_quote(v) for v in f.value) + ")"
    if f.op == "ilike":
        return f.field, f"ilike.*{f.value}*"
    return f.field, f"{f.op}.{_quote(f.value)}"


class PostgrestDataProvider:
    """DataProvider backed by a PostgREST endpoint (``{base_url}/rest/v1``).

    Transport failures are mapped onto DataProviderError with ``transient``
    set for connection errors and 5xx responses, so the tool executor knows
    which reads are worth retrying.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 4.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``.
            api_key: Service key sent as ``apikey`` and bearer token.
            timeout_seconds: Read timeout per request.
            client: Pre-built client (tests inject one with a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(connect=5.0, read=timeout_seconds, write=5.0, pool=5.0),
        )

    @staticmethod
    def _scope_params(scope: Scope) -> list[tuple[str, str]]:
        return [("project_id", f"eq.{_quote(scope.project_id)}")]

    async def _send(self, method: str, table: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, f"/{table}", **kwargs)
            response.raise_for_status()
            return response
        except httpx.TimeoutException:
            log.warning(DATA_PROVIDER_ERROR, table=table, method=method, error_type="timeout")
            raise DataProviderTimeout(f"Data provider timed out on {table}") from None
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.warning(DATA_PROVIDER_ERROR, table=table, method=method, status_code=status)
            raise DataProviderError(
                f"Data provider returned {status} for {table}", transient=status >= 500
            ) from None
        except httpx.RequestError as e:
            log.warning(DATA_PROVIDER_ERROR, table=table, method=method, error=str(e))
            raise DataProviderError(f"Data provider unreachable: {e}", transient=True) from None

    async def select(
        self,
        table: str,
        scope: Scope,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Query rows via ``GET /rest/v1/{table}``."""
        params: list[tuple[str, str]] = [("select", "*"), *self._scope_params(scope)]
        params.extend(encode_filter(f) for f in filters or [])
        if order_by:
            direction = "desc" if order_by.startswith("-") else "asc"
            params.append(("order", f"{order_by.lstrip('-')}.{direction}"))
        if limit is not None:
            params.append(("limit", str(limit)))

        response = await self._send("GET", table, params=params)
        try:
            rows = response.json()
        except ValueError:
            raise DataProviderError(f"Invalid JSON from data provider for {table}") from None
        if not isinstance(rows, list):
            raise DataProviderError(f"Unexpected payload from data provider for {table}")

        log.debug(DATA_PROVIDER_QUERY, table=table, rows=len(rows), provider="postgrest")
        return rows

    async def update(
        self,
        table: str,
        scope: Scope,
        ids: list[str],
        values: dict[str, Any],
    ) -> int:
        """Batched ``PATCH /rest/v1/{table}?id=in.(...)``."""
        if not ids:
            return 0
        params = [*self._scope_params(scope), encode_filter(Filter("id", "in", ids))]
        response = await self._send(
            "PATCH",
            table,
            params=params,
            json=values,
            headers={"Prefer": "return=representation"},
        )
        try:
            return len(response.json())
        except ValueError:
            return len(ids)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
