"""Tests for query filters and named date ranges."""

from datetime import date

import pytest

from project_assistant.data.filters import Filter, date_range, date_range_filters, eq, ilike, is_in

WEDNESDAY = date(2026, 10, 14)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("thisWeek", (date(2026, 10, 11), date(2026, 10, 17))),
        ("lastWeek", (date(2026, 10, 4), date(2026, 10, 10))),
        ("thisMonth", (date(2026, 10, 1), date(2026, 10, 31))),
        ("all", None),
    ],
)
def test_named_ranges(name, expected) -> None:
    """Weeks start on Sunday; months are calendar months."""
    assert date_range(name, today=WEDNESDAY) == expected


def test_sunday_starts_its_own_week() -> None:
    sunday = date(2026, 10, 11)
    assert date_range("thisWeek", today=sunday) == (sunday, date(2026, 10, 17))


def test_december_month_end() -> None:
    assert date_range("thisMonth", today=date(2026, 12, 5)) == (date(2026, 12, 1), date(2026, 12, 31))


def test_range_filters_match_iso_dates() -> None:
    filters = date_range_filters("lastWeek", today=WEDNESDAY)

    assert all(f.matches({"date": "2026-10-07"}) for f in filters)
    assert not all(f.matches({"date": "2026-10-11"}) for f in filters)
    assert date_range_filters("all", today=WEDNESDAY) == []


def test_filter_ops() -> None:
    row = {"status": "Open", "title": "Supplier Delay", "priority": None}

    assert eq("status", "Open").matches(row)
    assert is_in("status", ["Open", "Closed"]).matches(row)
    assert ilike("title", "supplier").matches(row)
    assert not ilike("priority", "high").matches(row)
    assert not Filter("priority", "gte", 1).matches(row)
