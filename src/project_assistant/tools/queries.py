"""Read-only project query tools.

Each tool is a thin query over the DataProvider, scoped to the caller's
project, returning compact dicts the model can summarize. All of them are
cacheable and require the ``<resource>:view`` capability.
"""

from typing import Any

from project_assistant.data.filters import DATE_RANGES, date_range_filters, eq, ilike, is_in
from project_assistant.data.provider import DataProvider, Row
from project_assistant.governance.models import Scope
from project_assistant.tools.registry import ToolRegistry
from project_assistant.tools.types import ToolParameter, ToolSpec, ToolValidationError

MILESTONE_STATUSES = ["Not Started", "In Progress", "Completed"]
DELIVERABLE_STATUSES = [
    "Not Started",
    "In Progress",
    "Submitted for Review",
    "Review Complete",
    "Delivered",
]
VALIDATION_STATUSES = ["Draft", "Submitted", "Validated", "Approved", "Rejected"]
RAID_TYPES = ["Risk", "Assumption", "Issue", "Dependency"]
RAID_STATUSES = ["Open", "In Progress", "Mitigated", "Closed"]
RAID_PRIORITIES = ["Low", "Medium", "High", "Critical"]
TASK_STATUSES = ["Not Started", "In Progress", "Complete", "On Hold"]

RAID_PREFIXES = {"Risk": "R", "Assumption": "A", "Issue": "I", "Dependency": "D"}


def raid_reference(row: Row) -> str | None:
    """Display reference for a RAID item, e.g. ``R-001``."""
    prefix = RAID_PREFIXES.get(row.get("type") or "")
    number = row.get("reference_number")
    if prefix is None or number is None:
        return None
    return f"{prefix}-{int(number):03d}"


def _linked_resource(scope: Scope) -> str:
    if scope.resource_id is None:
        raise ToolValidationError("You don't have a linked resource profile in this project")
    return scope.resource_id


def _number(value: Any) -> float:
    return float(value) if isinstance(value, (int, float)) else 0.0


def _round(value: float) -> float | int:
    rounded = round(value, 2)
    return int(rounded) if float(rounded).is_integer() else rounded


def _date_range_param(subject: str) -> ToolParameter:
    return ToolParameter(
        name="dateRange",
        type="string",
        description=f"Restrict {subject} to a period. Weeks start on Sunday.",
        required=False,
        default="all",
        enum=list(DATE_RANGES),
    )


def _mine_param(subject: str) -> ToolParameter:
    return ToolParameter(
        name="mine",
        type="boolean",
        description=f"Only the caller's own {subject}",
        required=False,
        default=False,
    )


class ProjectQueries:
    """Query handlers bound to a data provider."""

    def __init__(self, provider: DataProvider) -> None:  # noqa: D107
        self.provider = provider

    async def _names_by_id(self, table: str, ids: set[str], scope: Scope) -> dict[str, str]:
        wanted = sorted(i for i in ids if i)
        if not wanted:
            return {}
        rows = await self.provider.select(table, scope, [is_in("id", wanted)])
        return {row["id"]: row.get("name") or "" for row in rows}

    async def milestones(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List milestones, optionally by status."""
        filters = [eq("status", args["status"])] if args.get("status") else []
        rows = await self.provider.select("milestones", scope, filters, order_by="forecast_end_date")
        items = [
            {
                "id": row["id"],
                "name": row.get("name"),
                "status": row.get("status"),
                "progress": row.get("progress") or 0,
                "dueDate": row.get("forecast_end_date"),
                "billable": row.get("billable"),
            }
            for row in rows
        ]
        return {"milestones": items, "count": len(items)}

    async def deliverables(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List deliverables, optionally by status."""
        filters = [eq("status", args["status"])] if args.get("status") else []
        rows = await self.provider.select("deliverables", scope, filters, order_by="name")
        milestone_names = await self._names_by_id(
            "milestones", {row.get("milestone_id") for row in rows}, scope
        )
        items = [
            {
                "id": row["id"],
                "name": row.get("name"),
                "status": row.get("status"),
                "milestone": milestone_names.get(row.get("milestone_id") or ""),
                "dueDate": row.get("due_date"),
            }
            for row in rows
        ]
        return {"deliverables": items, "count": len(items)}

    async def timesheets(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List timesheet entries with total hours."""
        filters = date_range_filters(args.get("dateRange"))
        if args.get("status"):
            filters.append(eq("validation_status", args["status"]))
        if args.get("mine"):
            filters.append(eq("resource_id", _linked_resource(scope)))
        rows = await self.provider.select("timesheets", scope, filters, order_by="-date")

        resources = await self._names_by_id("resources", {r.get("resource_id") for r in rows}, scope)
        deliverables = await self._names_by_id(
            "deliverables", {r.get("deliverable_id") for r in rows}, scope
        )
        entries = [
            {
                "id": row["id"],
                "date": row.get("date"),
                "hours": row.get("hours"),
                "status": row.get("validation_status"),
                "resource": resources.get(row.get("resource_id") or ""),
                "deliverable": deliverables.get(row.get("deliverable_id") or "") or "General",
            }
            for row in rows
        ]
        total = sum(_number(row.get("hours")) for row in rows)
        return {"timesheets": entries, "count": len(entries), "totalHours": _round(total)}

    async def expenses(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List expenses with totals split by chargeability."""
        filters = date_range_filters(args.get("dateRange"))
        if args.get("status"):
            filters.append(eq("validation_status", args["status"]))
        if args.get("mine"):
            filters.append(eq("resource_id", _linked_resource(scope)))
        rows = await self.provider.select("expenses", scope, filters, order_by="-date")

        entries = [
            {
                "id": row["id"],
                "date": row.get("date"),
                "description": row.get("description"),
                "amount": row.get("amount"),
                "currency": row.get("currency") or "£",
                "status": row.get("validation_status"),
                "chargeable": bool(row.get("chargeable_to_customer")),
            }
            for row in rows
        ]
        chargeable = sum(_number(r.get("amount")) for r in rows if r.get("chargeable_to_customer"))
        total = sum(_number(r.get("amount")) for r in rows)
        return {
            "expenses": entries,
            "count": len(entries),
            "totalAmount": _round(total),
            "chargeableAmount": _round(chargeable),
            "nonChargeableAmount": _round(total - chargeable),
        }

    async def raid_items(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List RAID items by type/status/priority."""
        filters = []
        for param, column in (("type", "type"), ("status", "status"), ("priority", "priority")):
            if args.get(param):
                filters.append(eq(column, args[param]))
        rows = await self.provider.select("raid_items", scope, filters, order_by="reference_number")
        owners = await self._names_by_id("resources", {r.get("owner_id") for r in rows}, scope)
        items = [
            {
                "id": row["id"],
                "reference": raid_reference(row),
                "type": row.get("type"),
                "title": row.get("title"),
                "status": row.get("status"),
                "priority": row.get("priority"),
                "owner": owners.get(row.get("owner_id") or ""),
            }
            for row in rows
        ]
        return {"raidItems": items, "count": len(items)}

    async def tasks(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List plan tasks, optionally by status or assignee name."""
        filters = [eq("item_type", "task")]
        if args.get("status"):
            filters.append(eq("status", args["status"]))
        if args.get("assignee"):
            people = await self.provider.select("resources", scope, [ilike("name", args["assignee"])])
            filters.append(is_in("assigned_to", [p["id"] for p in people]))
        rows = await self.provider.select("plan_items", scope, filters, order_by="end_date")
        assignees = await self._names_by_id("resources", {r.get("assigned_to") for r in rows}, scope)
        items = [
            {
                "id": row["id"],
                "name": row.get("name"),
                "status": row.get("status"),
                "progress": row.get("progress") or 0,
                "assignee": assignees.get(row.get("assigned_to") or "") or "Unassigned",
                "dueDate": row.get("end_date"),
            }
            for row in rows
        ]
        return {"tasks": items, "count": len(items)}

    async def resources(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """List people working on the project."""
        rows = await self.provider.select("resources", scope, order_by="name")
        items = [
            {"id": row["id"], "name": row.get("name"), "role": row.get("role")} for row in rows
        ]
        return {"resources": items, "count": len(items)}

    async def budget_summary(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """Budget against billable milestones and actual spend."""
        projects = await self.provider.select("projects", scope, [eq("id", scope.project_id)])
        milestones = await self.provider.select("milestones", scope)
        budget = _number(projects[0].get("total_budget")) if projects else 0.0
        billable = sum(_number(m.get("billable")) for m in milestones)
        spend = sum(_number(m.get("actual_spend")) for m in milestones)
        return {
            "projectBudget": _round(budget),
            "milestoneBillable": _round(billable),
            "actualSpend": _round(spend),
            "variance": _round(budget - spend),
            "percentUsed": round(spend / budget * 100, 1) if budget else 0,
        }

    async def pending_actions(self, args: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """What is waiting on the caller: drafts to submit, items to validate."""
        awaiting = await self.provider.select(
            "timesheets", scope, [eq("validation_status", "Submitted")]
        )
        if scope.resource_id is None:
            drafts: list[Row] = []
            draft_expenses: list[Row] = []
        else:
            mine = [eq("resource_id", scope.resource_id), eq("validation_status", "Draft")]
            drafts = await self.provider.select("timesheets", scope, mine)
            draft_expenses = await self.provider.select("expenses", scope, mine)
        return {
            "draftTimesheets": len(drafts),
            "draftHours": _round(sum(_number(t.get("hours")) for t in drafts)),
            "draftExpenses": len(draft_expenses),
            "awaitingValidation": len(awaiting),
            "hasPending": bool(drafts or draft_expenses or awaiting),
        }


def query_tool_specs() -> list[ToolSpec]:
    """Specs of every read tool."""
    return [
        ToolSpec(
            name="getMilestones",
            description="List the project's milestones with status, progress and due date.",
            parameters=[
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only milestones in this status",
                    required=False,
                    enum=MILESTONE_STATUSES,
                )
            ],
            cacheable=True,
            required_capability="milestones:view",
        ),
        ToolSpec(
            name="getDeliverables",
            description="List the project's deliverables with status and parent milestone.",
            parameters=[
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only deliverables in this status",
                    required=False,
                    enum=DELIVERABLE_STATUSES,
                )
            ],
            cacheable=True,
            required_capability="deliverables:view",
        ),
        ToolSpec(
            name="getTimesheets",
            description="List timesheet entries and total hours. Use mine=true for the user's own.",
            parameters=[
                _date_range_param("timesheets"),
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only entries in this validation status",
                    required=False,
                    enum=VALIDATION_STATUSES,
                ),
                _mine_param("timesheets"),
            ],
            cacheable=True,
            required_capability="timesheets:view",
        ),
        ToolSpec(
            name="getExpenses",
            description="List expenses with totals, split into chargeable and non-chargeable.",
            parameters=[
                _date_range_param("expenses"),
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only expenses in this validation status",
                    required=False,
                    enum=VALIDATION_STATUSES,
                ),
                _mine_param("expenses"),
            ],
            cacheable=True,
            required_capability="expenses:view",
        ),
        ToolSpec(
            name="getRaidItems",
            description="List risks, assumptions, issues and dependencies (RAID log).",
            parameters=[
                ToolParameter(
                    name="type", type="string", description="RAID type", required=False, enum=RAID_TYPES
                ),
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only items in this status",
                    required=False,
                    enum=RAID_STATUSES,
                ),
                ToolParameter(
                    name="priority",
                    type="string",
                    description="Only items with this priority",
                    required=False,
                    enum=RAID_PRIORITIES,
                ),
            ],
            cacheable=True,
            required_capability="raid:view",
        ),
        ToolSpec(
            name="getTasks",
            description="List plan tasks with status, progress and assignee.",
            parameters=[
                ToolParameter(
                    name="status",
                    type="string",
                    description="Only tasks in this status",
                    required=False,
                    enum=TASK_STATUSES,
                ),
                ToolParameter(
                    name="assignee",
                    type="string",
                    description="Only tasks assigned to people whose name contains this",
                    required=False,
                ),
            ],
            cacheable=True,
            required_capability="tasks:view",
        ),
        ToolSpec(
            name="getResources",
            description="List the people (resources) working on the project.",
            cacheable=True,
            required_capability="resources:view",
        ),
        ToolSpec(
            name="getBudgetSummary",
            description="Project budget, billable milestone value, actual spend and variance.",
            cacheable=True,
            required_capability="budget:view",
        ),
        ToolSpec(
            name="getPendingActions",
            description="Items waiting on the user: draft timesheets/expenses and pending validations.",
            cacheable=True,
            required_capability="timesheets:view",
        ),
    ]


def register_query_tools(registry: ToolRegistry, provider: DataProvider) -> ProjectQueries:
    """Register every read tool against a data provider.

    Returns:
        The bound ProjectQueries instance.
    """
    queries = ProjectQueries(provider)
    handlers = {
        "getMilestones": queries.milestones,
        "getDeliverables": queries.deliverables,
        "getTimesheets": queries.timesheets,
        "getExpenses": queries.expenses,
        "getRaidItems": queries.raid_items,
        "getTasks": queries.tasks,
        "getResources": queries.resources,
        "getBudgetSummary": queries.budget_summary,
        "getPendingActions": queries.pending_actions,
    }
    for spec in query_tool_specs():
        registry.register(spec, handlers[spec.name])
    return queries
