"""Action tool handlers.

Each handler's ``prepare()`` resolves its targets, enforces ownership and
state rules, and returns an ActionPlan whose ``apply`` performs the update.
``prepare()`` only ever reads; the confirmation protocol decides whether
``apply`` runs.
"""

from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from project_assistant.actions.resolution import EntityResolver
from project_assistant.actions.schemas import action_tool_specs
from project_assistant.actions.types import ActionOutcome, ActionPlan
from project_assistant.data.filters import date_range_filters, eq
from project_assistant.data.provider import DataProvider, Row
from project_assistant.governance.models import Scope
from project_assistant.tools.registry import ToolRegistry
from project_assistant.tools.types import NotFoundError, PermissionDeniedError, ToolValidationError


def _fmt(value: Any) -> str:
    """Render 8.0 as "8" and 7.25 as "7.25"."""
    if isinstance(value, float):
        return f"{value:.2f}".rstrip("0").rstrip(".")
    return str(value if value is not None else 0)


def _total(rows: list[Row], field: str) -> float | int:
    total = round(sum(float(r.get(field) or 0) for r in rows), 2)
    return int(total) if float(total).is_integer() else total


def _append_note(existing: str | None, entry: str, today: date) -> str:
    line = f"[{today.isoformat()}] {entry}"
    return f"{existing}\n{line}" if existing else line


class ProjectAction:
    """Shared plumbing for action handlers.

    Subclasses implement ``prepare`` as described by ``ActionHandler``.
    """

    name: str = ""

    def __init__(
        self,
        provider: DataProvider,
        resolver: EntityResolver,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """Initialize the handler.

        Args:
            provider: Data provider for reads and the final update.
            resolver: Entity resolution over the same provider.
            today: Date source for end dates, notes and date ranges.
            now: Timestamp source for ``submitted_at``.
        """
        self.provider = provider
        self.resolver = resolver
        self.today = today
        self.now = now

    async def _update(self, table: str, scope: Scope, ids: list[str], values: dict[str, Any]) -> int:
        updated = await self.provider.update(table, scope, ids, values)
        if updated == 0:
            raise NotFoundError("Nothing was updated; the item no longer exists in this project")
        return updated


# Timesheets and expenses


class SubmitTimesheet(ProjectAction):
    name = "submitTimesheet"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        timesheet = await self.resolver.get_by_id("timesheet", args["timesheetId"], scope)
        if not scope.resource_id or timesheet.get("resource_id") != scope.resource_id:
            raise PermissionDeniedError("You can only submit your own timesheets")
        status = timesheet.get("validation_status")
        if status != "Draft":
            raise ToolValidationError(f"Timesheet is already {status}, cannot submit")

        deliverable = await self.resolver.name_of("deliverable", timesheet.get("deliverable_id"), scope)
        data = {
            "date": timesheet.get("date"),
            "hours": timesheet.get("hours"),
            "deliverable": deliverable or "General",
            "currentStatus": status,
        }

        async def apply() -> ActionOutcome:
            await self._update(
                "timesheets",
                scope,
                [timesheet["id"]],
                {"validation_status": "Submitted", "submitted_at": self.now().isoformat()},
            )
            return ActionOutcome(
                f"Timesheet submitted for approval ({data['date']}: {_fmt(data['hours'])} hours)"
            )

        return ActionPlan(
            action_name=self.name,
            preview=(
                f"Submit timesheet for {data['date']}: {_fmt(data['hours'])} hours "
                f"on {deliverable or 'project work'}"
            ),
            resolved_args={"timesheetId": timesheet["id"]},
            apply=apply,
            data=data,
            state=[status, timesheet.get("hours")],
        )


class SubmitAllTimesheets(ProjectAction):
    name = "submitAllTimesheets"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        if not scope.resource_id:
            raise ToolValidationError(
                "You don't have a linked resource profile in this project, "
                "so there are no timesheets to submit"
            )
        date_range = args.get("dateRange") or "all"
        drafts = await self.provider.select(
            "timesheets",
            scope,
            [
                eq("resource_id", scope.resource_id),
                eq("validation_status", "Draft"),
                *date_range_filters(date_range, today=self.today()),
            ],
            order_by="date",
        )
        resolved = {"dateRange": date_range}
        if not drafts:
            return ActionPlan.nothing_to_do(
                self.name, "0 timesheets found to submit", resolved, {"count": 0}
            )

        total = _total(drafts, "hours")
        entries = []
        for row in drafts:
            deliverable = await self.resolver.name_of("deliverable", row.get("deliverable_id"), scope)
            entries.append(
                {"date": row.get("date"), "hours": row.get("hours"), "deliverable": deliverable or "General"}
            )
        lines = "\n".join(f"  - {e['date']}: {_fmt(e['hours'])}h on {e['deliverable']}" for e in entries)
        ids = [row["id"] for row in drafts]
        count = len(drafts)

        async def apply() -> ActionOutcome:
            # One batched update for the whole set
            await self._update(
                "timesheets",
                scope,
                ids,
                {"validation_status": "Submitted", "submitted_at": self.now().isoformat()},
            )
            return ActionOutcome(
                f"{count} timesheet(s) submitted for approval ({_fmt(total)} hours total)",
                {"count": count, "totalHours": total},
            )

        return ActionPlan(
            action_name=self.name,
            preview=f"Submit {count} timesheet(s) totaling {_fmt(total)} hours:\n{lines}",
            resolved_args=resolved,
            apply=apply,
            data={"count": count, "totalHours": total, "timesheets": entries},
            state=sorted([row["id"], row.get("hours")] for row in drafts),
        )


class SubmitExpense(ProjectAction):
    name = "submitExpense"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        expense = await self.resolver.get_by_id("expense", args["expenseId"], scope)
        if not scope.resource_id or expense.get("resource_id") != scope.resource_id:
            raise PermissionDeniedError("You can only submit your own expenses")
        status = expense.get("validation_status")
        if status != "Draft":
            raise ToolValidationError(f"Expense is already {status}, cannot submit")

        currency = expense.get("currency") or "£"
        amount = _fmt(expense.get("amount"))
        description = expense.get("description") or "Expense"

        async def apply() -> ActionOutcome:
            await self._update(
                "expenses",
                scope,
                [expense["id"]],
                {"validation_status": "Submitted", "submitted_at": self.now().isoformat()},
            )
            return ActionOutcome(f"Expense submitted for approval ({description}: {currency}{amount})")

        return ActionPlan(
            action_name=self.name,
            preview=f"Submit expense: {description} - {currency}{amount}",
            resolved_args={"expenseId": expense["id"]},
            apply=apply,
            data={
                "date": expense.get("date"),
                "description": description,
                "amount": expense.get("amount"),
                "currency": currency,
                "currentStatus": status,
            },
            state=[status, expense.get("amount")],
        )


class SubmitAllExpenses(ProjectAction):
    name = "submitAllExpenses"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        if not scope.resource_id:
            raise ToolValidationError(
                "You don't have a linked resource profile in this project, "
                "so there are no expenses to submit"
            )
        date_range = args.get("dateRange") or "all"
        drafts = await self.provider.select(
            "expenses",
            scope,
            [
                eq("resource_id", scope.resource_id),
                eq("validation_status", "Draft"),
                *date_range_filters(date_range, today=self.today()),
            ],
            order_by="date",
        )
        resolved = {"dateRange": date_range}
        if not drafts:
            return ActionPlan.nothing_to_do(
                self.name, "0 expenses found to submit", resolved, {"count": 0}
            )

        currency = drafts[0].get("currency") or "£"
        total = _total(drafts, "amount")
        entries = [
            {"date": e.get("date"), "description": e.get("description"), "amount": e.get("amount")}
            for e in drafts
        ]
        lines = "\n".join(
            f"  - {e['date']}: {e['description']} - {currency}{_fmt(e['amount'])}" for e in entries
        )
        ids = [row["id"] for row in drafts]
        count = len(drafts)

        async def apply() -> ActionOutcome:
            await self._update(
                "expenses",
                scope,
                ids,
                {"validation_status": "Submitted", "submitted_at": self.now().isoformat()},
            )
            return ActionOutcome(
                f"{count} expense(s) submitted for approval ({currency}{_fmt(total)} total)",
                {"count": count, "totalAmount": total},
            )

        return ActionPlan(
            action_name=self.name,
            preview=f"Submit {count} expense(s) totaling {currency}{_fmt(total)}:\n{lines}",
            resolved_args=resolved,
            apply=apply,
            data={"count": count, "totalAmount": total, "currency": currency, "expenses": entries},
            state=sorted([row["id"], row.get("amount")] for row in drafts),
        )


# Milestones and deliverables


class UpdateMilestoneStatus(ProjectAction):
    name = "updateMilestoneStatus"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        milestone = await self.resolver.resolve("milestone", args["milestoneIdentifier"], scope)
        new_status = args["newStatus"]
        name = milestone.get("name")
        current = milestone.get("status")

        values: dict[str, Any] = {"status": new_status}
        if new_status == "Completed":
            values["progress"] = 100
            values["actual_end_date"] = self.today().isoformat()

        async def apply() -> ActionOutcome:
            await self._update("milestones", scope, [milestone["id"]], values)
            return ActionOutcome(f'Milestone "{name}" status updated to {new_status}')

        return ActionPlan(
            action_name=self.name,
            preview=f'Change milestone "{name}" status from {current} to {new_status}',
            resolved_args={"milestoneIdentifier": milestone["id"], "newStatus": new_status},
            apply=apply,
            data={"name": name, "currentStatus": current},
            state=[current, milestone.get("progress")],
        )


class UpdateMilestoneProgress(ProjectAction):
    name = "updateMilestoneProgress"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        milestone = await self.resolver.resolve("milestone", args["milestoneIdentifier"], scope)
        progress = args["progress"]
        name = milestone.get("name")
        status = milestone.get("status")
        current = milestone.get("progress") or 0

        values: dict[str, Any] = {"progress": progress}
        if progress == 100 and status != "Completed":
            values["status"] = "Completed"
            values["actual_end_date"] = self.today().isoformat()
        elif 0 < progress < 100 and status == "Not Started":
            values["status"] = "In Progress"

        async def apply() -> ActionOutcome:
            await self._update("milestones", scope, [milestone["id"]], values)
            message = f'Milestone "{name}" progress updated to {progress}%'
            if "status" in values:
                message += f" (status changed to {values['status']})"
            return ActionOutcome(message)

        return ActionPlan(
            action_name=self.name,
            preview=f'Update milestone "{name}" progress from {current}% to {progress}%',
            resolved_args={"milestoneIdentifier": milestone["id"], "progress": progress},
            apply=apply,
            data={"name": name, "currentProgress": current, "currentStatus": status},
            state=[status, current],
        )


class UpdateDeliverableStatus(ProjectAction):
    name = "updateDeliverableStatus"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        deliverable = await self.resolver.resolve("deliverable", args["deliverableIdentifier"], scope)
        new_status = args["newStatus"]
        name = deliverable.get("name")
        current = deliverable.get("status")

        async def apply() -> ActionOutcome:
            await self._update("deliverables", scope, [deliverable["id"]], {"status": new_status})
            return ActionOutcome(f'Deliverable "{name}" status updated to {new_status}')

        return ActionPlan(
            action_name=self.name,
            preview=f'Change deliverable "{name}" status from {current} to {new_status}',
            resolved_args={"deliverableIdentifier": deliverable["id"], "newStatus": new_status},
            apply=apply,
            data={"name": name, "currentStatus": current},
            state=current,
        )


# Tasks


class CompleteTask(ProjectAction):
    name = "completeTask"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        task = await self.resolver.resolve("task", args["taskIdentifier"], scope)
        name = task.get("name")
        if task.get("status") == "Complete":
            raise ToolValidationError(f'Task "{name}" is already complete')

        async def apply() -> ActionOutcome:
            await self._update(
                "plan_items",
                scope,
                [task["id"]],
                {"status": "Complete", "progress": 100, "actual_end_date": self.today().isoformat()},
            )
            return ActionOutcome(f'Task "{name}" marked as complete')

        return ActionPlan(
            action_name=self.name,
            preview=f'Mark task "{name}" as complete',
            resolved_args={"taskIdentifier": task["id"]},
            apply=apply,
            data={
                "name": name,
                "currentStatus": task.get("status"),
                "currentProgress": task.get("progress") or 0,
            },
            state=[task.get("status"), task.get("progress")],
        )


class UpdateTaskProgress(ProjectAction):
    name = "updateTaskProgress"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        task = await self.resolver.resolve("task", args["taskIdentifier"], scope)
        progress = args["progress"]
        name = task.get("name")
        status = task.get("status")
        current = task.get("progress") or 0

        values: dict[str, Any] = {"progress": progress}
        if progress == 100:
            values["status"] = "Complete"
            values["actual_end_date"] = self.today().isoformat()
        elif progress > 0 and status == "Not Started":
            values["status"] = "In Progress"

        async def apply() -> ActionOutcome:
            await self._update("plan_items", scope, [task["id"]], values)
            message = f'Task "{name}" progress updated to {progress}%'
            if "status" in values and values["status"] != status:
                message += f" (status changed to {values['status']})"
            return ActionOutcome(message)

        return ActionPlan(
            action_name=self.name,
            preview=f'Update task "{name}" progress from {current}% to {progress}%',
            resolved_args={"taskIdentifier": task["id"], "progress": progress},
            apply=apply,
            data={"name": name, "currentProgress": current, "currentStatus": status},
            state=[status, current],
        )


class ReassignTask(ProjectAction):
    name = "reassignTask"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        task = await self.resolver.resolve("task", args["taskIdentifier"], scope)
        assignee = await self.resolver.resolve("resource", args["newAssignee"], scope)
        name = task.get("name")
        current = await self.resolver.name_of("resource", task.get("assigned_to"), scope)
        new_name = assignee.get("name")

        async def apply() -> ActionOutcome:
            await self._update("plan_items", scope, [task["id"]], {"assigned_to": assignee["id"]})
            return ActionOutcome(f'Task "{name}" reassigned to {new_name}')

        return ActionPlan(
            action_name=self.name,
            preview=f'Reassign task "{name}" from {current or "unassigned"} to {new_name}',
            resolved_args={"taskIdentifier": task["id"], "newAssignee": assignee["id"]},
            apply=apply,
            data={"name": name, "currentAssignee": current or "Unassigned", "newAssignee": new_name},
            state=task.get("assigned_to"),
        )


# RAID log


class UpdateRaidStatus(ProjectAction):
    name = "updateRaidStatus"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        item = await self.resolver.resolve("raid_item", args["raidIdentifier"], scope)
        new_status = args["newStatus"]
        note = args.get("note")
        kind, title, current = item.get("type"), item.get("title"), item.get("status")

        values: dict[str, Any] = {"status": new_status}
        if note:
            values["resolution_notes"] = _append_note(item.get("resolution_notes"), note, self.today())

        preview = f'Change {kind} "{title}" status from {current} to {new_status}'
        if note:
            preview += f'\nNote: "{note}"'

        async def apply() -> ActionOutcome:
            await self._update("raid_items", scope, [item["id"]], values)
            return ActionOutcome(f'{kind} "{title}" status updated to {new_status}')

        resolved = {"raidIdentifier": item["id"], "newStatus": new_status}
        if note:
            resolved["note"] = note
        return ActionPlan(
            action_name=self.name,
            preview=preview,
            resolved_args=resolved,
            apply=apply,
            data={"type": kind, "title": title, "currentStatus": current},
            state=[current, item.get("resolution_notes")],
        )


class ResolveRaidItem(ProjectAction):
    name = "resolveRaidItem"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        item = await self.resolver.resolve("raid_item", args["raidIdentifier"], scope)
        note = args.get("resolutionNote")
        kind, title = item.get("type"), item.get("title")
        if item.get("status") == "Closed":
            raise ToolValidationError(f'{kind} "{title}" is already closed')

        today = self.today()
        values: dict[str, Any] = {"status": "Closed", "closed_date": today.isoformat()}
        if note:
            values["resolution_notes"] = _append_note(
                item.get("resolution_notes"), f"Resolved: {note}", today
            )

        async def apply() -> ActionOutcome:
            await self._update("raid_items", scope, [item["id"]], values)
            return ActionOutcome(f'{kind} "{title}" has been closed')

        resolved = {"raidIdentifier": item["id"]}
        if note:
            resolved["resolutionNote"] = note
        return ActionPlan(
            action_name=self.name,
            preview=f'Close {kind} "{title}"' + (f' with note: "{note}"' if note else ""),
            resolved_args=resolved,
            apply=apply,
            data={"type": kind, "title": title, "currentStatus": item.get("status")},
            state=[item.get("status"), item.get("resolution_notes")],
        )


class AssignRaidOwner(ProjectAction):
    name = "assignRaidOwner"

    async def prepare(self, args: dict[str, Any], scope: Scope) -> ActionPlan:
        item = await self.resolver.resolve("raid_item", args["raidIdentifier"], scope)
        owner = await self.resolver.resolve("resource", args["newOwner"], scope)
        kind, title = item.get("type"), item.get("title")
        current = await self.resolver.name_of("resource", item.get("owner_id"), scope)
        new_name = owner.get("name")

        async def apply() -> ActionOutcome:
            await self._update("raid_items", scope, [item["id"]], {"owner_id": owner["id"]})
            return ActionOutcome(f'{kind} "{title}" reassigned to {new_name}')

        return ActionPlan(
            action_name=self.name,
            preview=f'Reassign {kind} "{title}" from {current or "unassigned"} to {new_name}',
            resolved_args={"raidIdentifier": item["id"], "newOwner": owner["id"]},
            apply=apply,
            data={"type": kind, "title": title, "currentOwner": current or "Unassigned"},
            state=item.get("owner_id"),
        )


ACTION_HANDLERS: tuple[type[ProjectAction], ...] = (
    SubmitTimesheet,
    SubmitAllTimesheets,
    SubmitExpense,
    SubmitAllExpenses,
    UpdateMilestoneStatus,
    UpdateMilestoneProgress,
    UpdateDeliverableStatus,
    CompleteTask,
    UpdateTaskProgress,
    ReassignTask,
    UpdateRaidStatus,
    ResolveRaidItem,
    AssignRaidOwner,
)


def register_action_tools(
    registry: ToolRegistry,
    provider: DataProvider,
    resolver: EntityResolver | None = None,
    today: Callable[[], date] = date.today,
) -> dict[str, ProjectAction]:
    """Register every action tool against a data provider.

    Returns:
        Handlers by tool name.
    """
    resolver = resolver or EntityResolver(provider)
    handlers = {cls.name: cls(provider, resolver, today=today) for cls in ACTION_HANDLERS}
    for spec in action_tool_specs():
        registry.register(spec, handlers[spec.name])
    return handlers
