"""Query filters understood by every data provider, plus date-range helpers."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Literal

FilterOp = Literal["eq", "in", "gte", "lte", "ilike"]

DATE_RANGES = ("thisWeek", "lastWeek", "thisMonth", "all")


@dataclass(frozen=True)
class Filter:
    """A single column predicate.

    ``ilike`` values are plain substrings; providers add the wildcards.
    """

    field: str
    op: FilterOp
    value: Any

    def matches(self, row: dict[str, Any]) -> bool:
        """Evaluate the predicate against an in-memory row."""
        actual = row.get(self.field)
        if self.op == "eq":
            return actual == self.value
        if self.op == "in":
            return actual in self.value
        if self.op == "ilike":
            return actual is not None and str(self.value).lower() in str(actual).lower()
        if actual is None:
            return False
        if self.op == "gte":
            return actual >= self.value
        if self.op == "lte":
            return actual <= self.value
        raise ValueError(f"Unsupported filter op: {self.op}")


def eq(field: str, value: Any) -> Filter:
    return Filter(field, "eq", value)


def is_in(field: str, values: list[Any]) -> Filter:
    return Filter(field, "in", list(values))


def ilike(field: str, value: str) -> Filter:
    return Filter(field, "ilike", value)


def date_range(name: str, today: date | None = None) -> tuple[date, date] | None:
    """Resolve a named range to inclusive (start, end) dates.

    Weeks start on Sunday.

    Args:
        name: One of thisWeek, lastWeek, thisMonth, all.
        today: Reference date (defaults to today).

    Returns:
        (start, end), or None for "all" / unknown names.
    """
    today = today or date.today()
    # date.weekday(): Monday=0 ... Sunday=6
    start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)

    if name == "thisWeek":
        return start_of_week, start_of_week + timedelta(days=6)
    if name == "lastWeek":
        return start_of_week - timedelta(days=7), start_of_week - timedelta(days=1)
    if name == "thisMonth":
        month_start = today.replace(day=1)
        next_month = (month_start + timedelta(days=32)).replace(day=1)
        return month_start, next_month - timedelta(days=1)
    return None


def date_range_filters(name: str | None, field: str = "date", today: date | None = None) -> list[Filter]:
    """Filters restricting ``field`` (ISO date strings) to a named range."""
    bounds = date_range(name or "all", today=today)
    if bounds is None:
        return []
    start, end = bounds
    return [Filter(field, "gte", start.isoformat()), Filter(field, "lte", end.isoformat())]
