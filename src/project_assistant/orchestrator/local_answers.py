"""Deterministic answers rendered from a prefetched snapshot.

Each matcher pairs a question pattern with a renderer over one snapshot
section. A renderer returns None when its section is missing, in which case
the question falls through to a model path.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from project_assistant.orchestrator.types import PrefetchedSnapshot, StatusSummary


def _money(value: float | None) -> str:
    amount = value or 0
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    if float(amount).is_integer():
        return f"{sign}£{amount:,.0f}"
    return f"{sign}£{amount:,.2f}"


def _num(value: float | None) -> str:
    amount = value or 0
    return f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.1f}"


def _humanize(key: str) -> str:
    # "inProgress" -> "In progress"
    words = re.sub(r"(?<!^)(?=[A-Z])", " ", key).lower()
    return words[:1].upper() + words[1:]


def _status_lines(summary: StatusSummary) -> list[str]:
    return [f"- {_humanize(status)}: {count}" for status, count in summary.by_status.items() if count]


def _project_label(snapshot: PrefetchedSnapshot) -> str:
    if snapshot.project and snapshot.project.name:
        return snapshot.project.name
    return "this project"


def render_budget(snapshot: PrefetchedSnapshot) -> str | None:
    """Budget summary."""
    budget = snapshot.budget_summary
    if budget is None:
        return None
    lines = [f"**Budget summary for {_project_label(snapshot)}**"]
    if budget.project_budget is not None:
        lines.append(f"- Project budget: {_money(budget.project_budget)}")
    lines.append(f"- Milestone billable: {_money(budget.milestone_billable)}")
    lines.append(f"- Actual spend: {_money(budget.actual_spend)}")
    variance = budget.variance
    if variance is None and budget.milestone_billable is not None:
        variance = budget.milestone_billable - (budget.actual_spend or 0)
    lines.append(f"- Variance: {_money(variance)}")
    lines.append(f"- Budget used: {_num(budget.percent_used)}%")
    return "\n".join(lines)


def render_milestones(snapshot: PrefetchedSnapshot) -> str | None:
    """Milestone count and status breakdown."""
    summary = snapshot.milestone_summary
    if summary is None or summary.total is None:
        return None
    if summary.total == 0:
        return f"There are no milestones on {_project_label(snapshot)} yet."
    label = _project_label(snapshot)
    lines = [f"{label[:1].upper() + label[1:]} has {summary.total} milestone(s):"]
    lines.extend(_status_lines(summary))
    at_risk = summary.by_status.get("atRisk", 0)
    if at_risk:
        lines.append(f"\n{at_risk} milestone(s) are flagged at risk.")
    return "\n".join(lines)


def render_deliverables(snapshot: PrefetchedSnapshot) -> str | None:
    """Deliverable count and status breakdown."""
    summary = snapshot.deliverable_summary
    if summary is None or summary.total is None:
        return None
    if summary.total == 0:
        return f"There are no deliverables on {_project_label(snapshot)} yet."
    lines = [f"There are {summary.total} deliverable(s):"]
    lines.extend(_status_lines(summary))
    return "\n".join(lines)


def render_timesheets(snapshot: PrefetchedSnapshot) -> str | None:
    """Hours logged this period."""
    summary = snapshot.timesheet_summary
    if summary is None or summary.total_entries is None:
        return None
    lines = [
        f"{_num(summary.total_hours)} hours logged across {summary.total_entries} timesheet entries this month."
    ]
    lines.extend(f"- {_humanize(status)}: {count}" for status, count in summary.by_status.items() if count)
    return "\n".join(lines)


def render_expenses(snapshot: PrefetchedSnapshot) -> str | None:
    """Expense totals split by chargeability."""
    summary = snapshot.expense_summary
    if summary is None or summary.total_entries is None:
        return None
    return "\n".join(
        [
            f"{summary.total_entries} expense(s) totaling {_money(summary.total_amount)}:",
            f"- Chargeable to customer: {_money(summary.chargeable_amount)}",
            f"- Non-chargeable: {_money(summary.non_chargeable_amount)}",
        ]
    )


def render_pending(snapshot: PrefetchedSnapshot) -> str | None:
    """Drafts and items awaiting validation."""
    pending = snapshot.pending_actions
    if pending is None:
        return None
    drafts = pending.draft_timesheets or 0
    awaiting = pending.awaiting_validation or 0
    if not (drafts or awaiting):
        return "You have no pending actions. Everything is up to date."
    lines = ["Here's what is pending:"]
    if drafts:
        lines.append(f"- {drafts} draft timesheet(s) waiting for you to submit")
    if awaiting:
        lines.append(f"- {awaiting} item(s) awaiting validation")
    if drafts:
        lines.append('\nSay "submit my timesheets" and I can submit the drafts for you.')
    return "\n".join(lines)


def render_raid(snapshot: PrefetchedSnapshot) -> str | None:
    """Open risks and issues."""
    summary = snapshot.raid_summary
    if summary is None or summary.total is None:
        return None
    lines = [
        f"The RAID log has {summary.total} item(s): "
        f"{summary.open_risks or 0} open risk(s) and {summary.open_issues or 0} open issue(s)."
    ]
    if summary.high_priority:
        lines.append(f"{summary.high_priority} item(s) are high priority.")
    if summary.by_type:
        lines.append(
            "By type: " + ", ".join(f"{kind} {count}" for kind, count in summary.by_type.items())
        )
    return "\n".join(lines)


def render_quality(snapshot: PrefetchedSnapshot) -> str | None:
    """Quality standard compliance."""
    summary = snapshot.quality_standards_summary
    if summary is None or summary.total is None:
        return None
    if summary.total == 0:
        return "No quality standards have been defined for this project."
    return (
        f"{summary.compliant or 0} of {summary.total} quality standard(s) are compliant "
        f"({_num(summary.compliance_rate)}% compliance). "
        f"{summary.needs_attention or 0} need attention."
    )


@dataclass(frozen=True)
class LocalAnswerMatcher:
    """A question pattern and the snapshot renderer that answers it."""

    name: str
    pattern: re.Pattern[str]
    render: Callable[[PrefetchedSnapshot], str | None]


LOCAL_ANSWER_MATCHERS: tuple[LocalAnswerMatcher, ...] = (
    LocalAnswerMatcher(
        "pending_actions",
        re.compile(
            r"\b(pending (actions?|items?|approvals?)|anything pending|what('s| is) pending|"
            r"draft timesheets?|do i have (any )?(drafts|pending))\b",
            re.IGNORECASE,
        ),
        render_pending,
    ),
    LocalAnswerMatcher(
        "budget_summary",
        re.compile(
            r"\b(budget( summary| status| overview| position)?|how much (have we|has been) spent|"
            r"actual spend|budget variance)\b",
            re.IGNORECASE,
        ),
        render_budget,
    ),
    LocalAnswerMatcher(
        "milestone_status",
        re.compile(
            r"\b(milestones? (status|summary|overview)|how many milestones|"
            r"status of (the |all |our )?milestones|milestones (are )?(at risk|completed?|in progress))\b",
            re.IGNORECASE,
        ),
        render_milestones,
    ),
    LocalAnswerMatcher(
        "deliverable_status",
        re.compile(
            r"\b(deliverables? (status|summary|overview)|how many deliverables|"
            r"status of (the |all |our )?deliverables)\b",
            re.IGNORECASE,
        ),
        render_deliverables,
    ),
    LocalAnswerMatcher(
        "timesheet_hours",
        re.compile(
            r"\b(how many hours|total hours|hours (logged|recorded|booked)|"
            r"timesheets? (summary|hours|status|overview))\b",
            re.IGNORECASE,
        ),
        render_timesheets,
    ),
    LocalAnswerMatcher(
        "expense_summary",
        re.compile(
            r"\b(expenses? (summary|total|totals|overview)|total expenses|how much .*\bexpenses)\b",
            re.IGNORECASE,
        ),
        render_expenses,
    ),
    LocalAnswerMatcher(
        "open_raid_items",
        re.compile(
            r"\b(open (risks?|issues?)|how many (open )?(risks|issues)|raid (summary|log|status|overview))\b",
            re.IGNORECASE,
        ),
        render_raid,
    ),
    LocalAnswerMatcher(
        "quality_standards",
        re.compile(r"\b(quality standards?|compliance (rate|status))\b", re.IGNORECASE),
        render_quality,
    ),
)


def answer_from_snapshot(
    text: str,
    snapshot: PrefetchedSnapshot,
    matchers: tuple[LocalAnswerMatcher, ...] = LOCAL_ANSWER_MATCHERS,
) -> tuple[str, str] | None:
    """Answer a question from the snapshot if a matcher applies.

    Args:
        text: The user's question.
        snapshot: Prefetched aggregate.
        matchers: Matchers tried in order.

    Returns:
        ``(matcher_name, answer)`` or None when no matcher has data to answer with.
    """
    for matcher in matchers:
        if not matcher.pattern.search(text):
            continue
        answer = matcher.render(snapshot)
        if answer is not None:
            return matcher.name, answer
    return None
