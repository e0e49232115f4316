"""Data provider contract consumed by tool handlers.

The relational store and its row-level authorization live outside this
package. Handlers talk to it through this narrow query contract; every call
carries the caller's Scope and providers must restrict results to it.
"""

from typing import Any, Protocol, runtime_checkable

from project_assistant.data.filters import Filter
from project_assistant.governance.models import Scope

Row = dict[str, Any]


class DataProviderError(Exception):
    """Raised when the data provider fails.

    Attributes:
        transient: True when retrying the same read may succeed
            (connection resets, 5xx responses).
    """

    def __init__(self, message: str, transient: bool = False) -> None:  # noqa: D107
        super().__init__(message)
        self.transient = transient


class DataProviderTimeout(DataProviderError):
    """Raised when a data provider call exceeds its timeout."""

    def __init__(self, message: str) -> None:  # noqa: D107
        super().__init__(message, transient=True)


@runtime_checkable
class DataProvider(Protocol):
    """Query contract for the project data store."""

    async def select(
        self,
        table: str,
        scope: Scope,
        filters: list[Filter] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows of ``table`` in the scope's project matching all filters.

        Args:
            table: Table name (milestones, timesheets, raid_items, ...).
            scope: Caller scope; results never leave its project.
            filters: Column predicates, ANDed together.
            order_by: Column to sort ascending by; prefix with "-" for descending.
            limit: Maximum rows to return.

        Raises:
            DataProviderError: On provider failure.
        """
        ...

    async def update(
        self,
        table: str,
        scope: Scope,
        ids: list[str],
        values: dict[str, Any],
    ) -> int:
        """Apply ``values`` to the rows with the given ids in one batched call.

        Returns:
            Number of rows updated.

        Raises:
            DataProviderError: On provider failure.
        """
        ...

    async def aclose(self) -> None:
        """Release connections held by the provider."""
        ...
