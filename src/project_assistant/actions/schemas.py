"""Specs of the action tools offered to the model.

Every action is mutating and goes through the confirmation protocol; the
registry adds the ``confirmed`` flag to each schema.
"""

from project_assistant.data.filters import DATE_RANGES
from project_assistant.tools.queries import (
    DELIVERABLE_STATUSES,
    MILESTONE_STATUSES,
    RAID_STATUSES,
)
from project_assistant.tools.types import ToolParameter, ToolSpec

ACTION_PERMISSIONS: dict[str, str] = {
    "submitTimesheet": "timesheets:submit",
    "submitAllTimesheets": "timesheets:submit",
    "submitExpense": "expenses:submit",
    "submitAllExpenses": "expenses:submit",
    "updateMilestoneStatus": "milestones:edit",
    "updateMilestoneProgress": "milestones:edit",
    "updateDeliverableStatus": "deliverables:edit",
    "completeTask": "tasks:edit",
    "updateTaskProgress": "tasks:edit",
    "reassignTask": "tasks:edit",
    "updateRaidStatus": "raid:edit",
    "resolveRaidItem": "raid:edit",
    "assignRaidOwner": "raid:edit",
}

_RAID_IDENTIFIER = ToolParameter(
    name="raidIdentifier",
    type="string",
    description="The RAID item reference (e.g. R-001, I-023) or title",
)


def _identifier(name: str, entity: str) -> ToolParameter:
    return ToolParameter(name=name, type="string", description=f"The {entity} name or ID")


def _progress() -> ToolParameter:
    return ToolParameter(
        name="progress",
        type="integer",
        description="The new progress percentage (0-100)",
        minimum=0,
        maximum=100,
    )


def _date_range(subject: str) -> ToolParameter:
    return ToolParameter(
        name="dateRange",
        type="string",
        description=f"Optional date range filter. Default is all draft {subject}.",
        required=False,
        default="all",
        enum=list(DATE_RANGES),
    )


def _action(name: str, description: str, parameters: list[ToolParameter]) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=description,
        parameters=parameters,
        mutating=True,
        required_capability=ACTION_PERMISSIONS[name],
    )


def action_tool_specs() -> list[ToolSpec]:
    """Specs of every action tool."""
    return [
        _action(
            "submitTimesheet",
            "Submit a single draft timesheet for approval. The timesheet must be in Draft "
            "status and belong to the current user. Returns a confirmation preview first.",
            [ToolParameter(name="timesheetId", type="string", description="The ID of the timesheet")],
        ),
        _action(
            "submitAllTimesheets",
            "Submit all of the current user's draft timesheets for approval. Use when the user "
            "says 'submit my timesheets' or 'submit my timesheets for this week'.",
            [_date_range("timesheets")],
        ),
        _action(
            "submitExpense",
            "Submit a single draft expense for approval. The expense must be in Draft status "
            "and belong to the current user.",
            [ToolParameter(name="expenseId", type="string", description="The ID of the expense")],
        ),
        _action(
            "submitAllExpenses",
            "Submit all of the current user's draft expenses for approval.",
            [_date_range("expenses")],
        ),
        _action(
            "updateMilestoneStatus",
            "Update a milestone's status. Valid statuses: Not Started, In Progress, Completed.",
            [
                _identifier("milestoneIdentifier", "milestone"),
                ToolParameter(
                    name="newStatus",
                    type="string",
                    description="The new status for the milestone",
                    enum=MILESTONE_STATUSES,
                ),
            ],
        ),
        _action(
            "updateMilestoneProgress",
            "Update a milestone's progress percentage.",
            [_identifier("milestoneIdentifier", "milestone"), _progress()],
        ),
        _action(
            "updateDeliverableStatus",
            "Update a deliverable's status.",
            [
                _identifier("deliverableIdentifier", "deliverable"),
                ToolParameter(
                    name="newStatus",
                    type="string",
                    description="The new status for the deliverable",
                    enum=DELIVERABLE_STATUSES,
                ),
            ],
        ),
        _action(
            "completeTask",
            "Mark a task as complete. Sets status to Complete and progress to 100%.",
            [_identifier("taskIdentifier", "task")],
        ),
        _action(
            "updateTaskProgress",
            "Update a task's progress percentage.",
            [_identifier("taskIdentifier", "task"), _progress()],
        ),
        _action(
            "reassignTask",
            "Reassign a task to a different person.",
            [
                _identifier("taskIdentifier", "task"),
                ToolParameter(
                    name="newAssignee",
                    type="string",
                    description="The name of the person to assign the task to",
                ),
            ],
        ),
        _action(
            "updateRaidStatus",
            "Update a RAID item's status, optionally with a note explaining the change.",
            [
                _RAID_IDENTIFIER,
                ToolParameter(
                    name="newStatus",
                    type="string",
                    description="The new status for the RAID item",
                    enum=RAID_STATUSES,
                ),
                ToolParameter(
                    name="note",
                    type="string",
                    description="Optional note explaining the status change",
                    required=False,
                ),
            ],
        ),
        _action(
            "resolveRaidItem",
            "Close a RAID item, optionally recording how it was resolved.",
            [
                _RAID_IDENTIFIER,
                ToolParameter(
                    name="resolutionNote",
                    type="string",
                    description="Note explaining how the item was resolved",
                    required=False,
                ),
            ],
        ),
        _action(
            "assignRaidOwner",
            "Assign or reassign a RAID item to a different owner.",
            [
                _RAID_IDENTIFIER,
                ToolParameter(
                    name="newOwner",
                    type="string",
                    description="The name of the person to assign as owner",
                ),
            ],
        ),
    ]
