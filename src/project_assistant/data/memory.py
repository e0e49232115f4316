"""In-process data provider.

Backs local development (``project-assistant serve`` without a PostgREST URL)
and the test suite. Rows are plain dicts held per table; every query is
restricted to the caller's project (and tenant, when rows carry one).
"""

import asyncio
import copy
import threading
from typing import Any

from project_assistant.data.filters import Filter
from project_assistant.data.provider import DataProviderError, Row
from project_assistant.governance.models import Scope
from project_assistant.telemetry import get_logger
from project_assistant.telemetry.events import DATA_PROVIDER_QUERY

log = get_logger(__name__)


def _in_scope(row: Row, scope: Scope) -> bool:
    if row.get("project_id") != scope.project_id:
        return False
    tenant = row.get("tenant_id")
    return tenant is None or tenant == scope.tenant_id


def _sort_key(value: Any) -> tuple[bool, Any]:
    # None sorts last
    return (value is None, value if value is not None else 0)


class InMemoryDataProvider:
    """Dict-of-lists data store implementing the DataProvider contract.

    Attributes:
        calls: Log of ``(operation, table)`` pairs, in call order.
        delay_seconds: Artificial latency added before every call.
    """

    def __init__(
        self,
        tables: dict[str, list[Row]] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        """Initialize the store.

        Args:
            tables: Initial rows per table (deep-copied).
            delay_seconds: Latency injected before each call.
        """
        self._tables: dict[str, list[Row]] = copy.deepcopy(tables) if tables else {}
        self._lock = threading.Lock()
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, str]] = []

    def seed(self, table: str, rows: list[Row]) -> None:
        """Append rows to a table."""
        with self._lock:
            self._tables.setdefault(table, []).extend(copy.deepcopy(rows))

    def rows(self, table: str) -> list[Row]:
        """Snapshot of every row in a table, ignoring scope (test helper)."""
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def call_count(self, operation: str, table: str | None = None) -> int:
        """How many times ``operation`` ("select"/"update") ran, optionally per table."""
        return sum(
            1 for op, name in self.calls if op == operation and (table is None or name == table)
        )

    async def select(
        self,
        table: str,
        scope: Scope,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Return matching rows in the scope's project."""
        self.calls.append(("select", table))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        filters = filters or []
        with self._lock:
            if table not in self._tables:
                raise DataProviderError(f"Unknown table: {table}")
            matched = [
                copy.deepcopy(row)
                for row in self._tables[table]
                if _in_scope(row, scope) and all(f.matches(row) for f in filters)
            ]

        if order_by:
            descending = order_by.startswith("-")
            column = order_by.lstrip("-")
            matched.sort(key=lambda r: _sort_key(r.get(column)), reverse=descending)
        if limit is not None:
            matched = matched[:limit]

        log.debug(DATA_PROVIDER_QUERY, table=table, rows=len(matched), provider="memory")
        return matched

    async def update(
        self,
        table: str,
        scope: Scope,
        ids: list[str],
        values: dict[str, Any],
    ) -> int:
        """Apply ``values`` to in-scope rows whose id is in ``ids``."""
        self.calls.append(("update", table))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        wanted = set(ids)
        updated = 0
        with self._lock:
            if table not in self._tables:
                raise DataProviderError(f"Unknown table: {table}")
            for row in self._tables[table]:
                if row.get("id") in wanted and _in_scope(row, scope):
                    row.update(copy.deepcopy(values))
                    updated += 1
        return updated

    async def aclose(self) -> None:
        """Nothing to release."""
        return None
