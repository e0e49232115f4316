"""System prompts for the streaming and standard paths.

The wording is a starting point; routing and the tool loop do not depend on it.
"""

from datetime import date

import orjson

from project_assistant.governance.models import CallerContext
from project_assistant.orchestrator.types import PrefetchedSnapshot

ASSISTANT_IDENTITY = """You are the project assistant inside a project-tracking application.
You help project managers, finance users and contributors understand and update their project:
milestones, deliverables, timesheets, expenses, tasks, resources and the RAID log
(risks, assumptions, issues, dependencies).

Be concise and factual. Use British English and £ for money. Use short bullet lists for
breakdowns. Never invent figures: if you do not have the data, say so."""

STANDARD_INSTRUCTIONS = """**Using tools:**
- Use the query tools to fetch data before answering questions about specific items,
  people, dates or filtered subsets.
- You may call several query tools at once when the question needs more than one.
- If a tool returns an error, explain it plainly or try a different approach. An ambiguous
  match lists candidates: ask the user which one they mean.

**Changing data (actions):**
- Every action must be confirmed by the user before it runs.
- First call the action WITHOUT `confirmed` (or with `confirmed: false`). You will receive a
  preview. Show the preview to the user and ask them to confirm.
- Only after the user explicitly confirms (e.g. "yes", "go ahead", "confirm"), call the same
  action again with the same parameters and `confirmed: true`.
- Never set `confirmed: true` on your own initiative, and never confirm an action the user
  has not seen a preview for.
- If the preview says there is nothing to do, tell the user; do not ask for confirmation."""

STREAMING_INSTRUCTIONS = """Answer in a single reply. You cannot look up additional data in this
mode; if the question needs specific records, say you can look them up and suggest the user
asks about them directly."""


def _caller_block(caller: CallerContext, today: date) -> str:
    lines = [
        "**Context:**",
        f"- Today: {today.isoformat()}",
        f"- User role: {caller.role}",
        f"- Project id: {caller.project_id}",
    ]
    if caller.resource_id:
        lines.append("- The user has a linked resource profile (can submit own timesheets/expenses)")
    else:
        lines.append("- The user has no linked resource profile (cannot submit timesheets/expenses)")
    return "\n".join(lines)


def _snapshot_block(snapshot: PrefetchedSnapshot | None) -> str | None:
    if snapshot is None:
        return None
    data = snapshot.model_dump(by_alias=True, exclude_none=True, mode="json")
    if not data:
        return None
    return "**Project snapshot (prefetched):**\n" + orjson.dumps(
        data, option=orjson.OPT_INDENT_2
    ).decode()


def build_system_prompt(
    caller: CallerContext,
    snapshot: PrefetchedSnapshot | None = None,
    with_tools: bool = True,
    today: date | None = None,
) -> str:
    """Assemble the system prompt for a model call.

    Args:
        caller: Who is asking.
        snapshot: Prefetched aggregate, included as context when present.
        with_tools: Standard path (tool instructions) or streaming path.
        today: Date shown to the model (defaults to today).

    Returns:
        System prompt text.
    """
    sections = [
        ASSISTANT_IDENTITY,
        STANDARD_INSTRUCTIONS if with_tools else STREAMING_INSTRUCTIONS,
        _caller_block(caller, today or date.today()),
    ]
    snapshot_block = _snapshot_block(snapshot)
    if snapshot_block:
        sections.append(snapshot_block)
    return "\n\n".join(sections)
