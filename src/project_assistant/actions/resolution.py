"""Entity resolution for action tools.

Users name things loosely ("the Phase 1 milestone", "R-3", "Sam"). Action
tools must act on exactly one row, so resolution never guesses: zero
matches is NotFound and more than one is Ambiguous with the candidates, even
when one of them matches the identifier exactly.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from project_assistant.data.filters import Filter, eq, ilike
from project_assistant.data.provider import DataProvider, Row
from project_assistant.governance.models import Scope
from project_assistant.telemetry import get_logger
from project_assistant.tools.queries import raid_reference
from project_assistant.tools.types import AmbiguousMatchError, NotFoundError, ToolValidationError

log = get_logger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
RAID_REFERENCE_PATTERN = re.compile(r"^([RAID])-?(\d+)$", re.IGNORECASE)
RAID_TYPE_BY_PREFIX = {"R": "Risk", "A": "Assumption", "I": "Issue", "D": "Dependency"}


@dataclass(frozen=True)
class EntityKind:
    """Where an entity type lives and how it is named."""

    table: str
    name_field: str
    label: str
    plural: str
    filters: tuple[Filter, ...] = field(default_factory=tuple)


ENTITY_KINDS: dict[str, EntityKind] = {
    "milestone": EntityKind("milestones", "name", "Milestone", "milestones"),
    "deliverable": EntityKind("deliverables", "name", "Deliverable", "deliverables"),
    "task": EntityKind("plan_items", "name", "Task", "tasks", (eq("item_type", "task"),)),
    "raid_item": EntityKind("raid_items", "title", "RAID item", "RAID items"),
    "resource": EntityKind("resources", "name", "Resource", "people"),
    "timesheet": EntityKind("timesheets", "date", "Timesheet", "timesheets"),
    "expense": EntityKind("expenses", "description", "Expense", "expenses"),
}


def _candidate(kind: EntityKind, row: Row) -> dict[str, Any]:
    candidate = {"id": row.get("id"), "name": row.get(kind.name_field)}
    if kind.table == "raid_items":
        candidate["reference"] = raid_reference(row)
    return candidate


class EntityResolver:
    """Resolves user-supplied identifiers to single rows in the caller's project."""

    def __init__(self, provider: DataProvider) -> None:
        """Initialize the resolver.

        Args:
            provider: Data provider to query.
        """
        self.provider = provider

    async def resolve(self, entity_type: str, identifier: str, scope: Scope) -> Row:
        """Resolve an identifier to exactly one entity.

        Accepts, in order: an exact UUID, a RAID reference code such as
        ``R-001`` or ``I23`` (RAID items only), or a case-insensitive partial
        name match.

        Args:
            entity_type: One of milestone, deliverable, task, raid_item, resource.
            identifier: What the user called it.
            scope: Caller scope.

        Returns:
            The matching row.

        Raises:
            NotFoundError: Nothing matches.
            AmbiguousMatchError: More than one entity matches.
            ToolValidationError: Empty identifier.
            ValueError: Unknown entity type.
        """
        kind = ENTITY_KINDS.get(entity_type)
        if kind is None:
            raise ValueError(f"Unknown entity type: {entity_type}")

        identifier = identifier.strip()
        if not identifier:
            raise ToolValidationError(f"{kind.label} identifier must not be empty")

        base = list(kind.filters)
        if UUID_PATTERN.match(identifier):
            rows = await self.provider.select(kind.table, scope, [*base, eq("id", identifier)])
            if rows:
                return rows[0]

        if kind.table == "raid_items":
            ref = RAID_REFERENCE_PATTERN.match(identifier)
            if ref:
                rows = await self.provider.select(
                    kind.table,
                    scope,
                    [
                        eq("type", RAID_TYPE_BY_PREFIX[ref.group(1).upper()]),
                        eq("reference_number", int(ref.group(2))),
                    ],
                )
                if len(rows) == 1:
                    return rows[0]

        rows = await self.provider.select(
            kind.table, scope, [*base, ilike(kind.name_field, identifier)], order_by=kind.name_field
        )
        if not rows:
            raise NotFoundError(f'{kind.label} "{identifier}" not found')
        if len(rows) > 1:
            candidates = [_candidate(kind, row) for row in rows]
            names = ", ".join(str(c["name"]) for c in candidates)
            log.debug(
                "entity_resolution_ambiguous",
                entity_type=entity_type,
                identifier=identifier,
                matches=len(rows),
            )
            raise AmbiguousMatchError(
                f'Multiple {kind.plural} match "{identifier}": {names}. Please be more specific.',
                candidates=candidates,
            )
        return rows[0]

    async def get_by_id(self, entity_type: str, entity_id: str, scope: Scope) -> Row:
        """Fetch one entity by exact id.

        Raises:
            NotFoundError: No such entity in the caller's project.
        """
        kind = ENTITY_KINDS[entity_type]
        rows = await self.provider.select(kind.table, scope, [*kind.filters, eq("id", entity_id)])
        if not rows:
            raise NotFoundError(f"{kind.label} {entity_id} not found")
        return rows[0]

    async def name_of(self, entity_type: str, entity_id: str | None, scope: Scope) -> str | None:
        """Display name of an entity, or None when unset or missing."""
        if not entity_id:
            return None
        kind = ENTITY_KINDS[entity_type]
        rows = await self.provider.select(kind.table, scope, [eq("id", entity_id)])
        return rows[0].get(kind.name_field) if rows else None
