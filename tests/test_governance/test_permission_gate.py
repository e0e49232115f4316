"""Tests for the capability permission gate."""

import pytest

from project_assistant.governance.models import default_permissions_config
from project_assistant.governance.permissions import PermissionGate, describe_capability


@pytest.fixture
def gate() -> PermissionGate:
    return PermissionGate(default_permissions_config())


def test_unrestricted_capability_always_allowed(gate, make_caller) -> None:
    """Tools without a required capability are open to every known role."""
    assert gate.check(make_caller(role="viewer"), None)


def test_role_grants_capability(gate, make_caller) -> None:
    """Contributors may submit timesheets; viewers may not."""
    assert gate.check(make_caller(role="contributor"), "timesheets:submit")

    denied = gate.check(make_caller(role="viewer"), "timesheets:submit")
    assert not denied
    assert denied.reason == "You don't have permission to submit timesheets"


def test_roles_are_case_insensitive(gate, make_caller) -> None:
    """Role names are normalized before lookup."""
    caller = make_caller(role="Supplier_PM")

    assert caller.role == "supplier_pm"
    assert gate.check(caller, "milestones:edit")


def test_unknown_role(gate, make_caller) -> None:
    """Unknown roles hold no capabilities."""
    caller = make_caller(role="intern")

    assert not gate.is_known_role("intern")
    result = gate.check(caller, "milestones:view")
    assert not result
    assert "Unknown role" in result.reason


def test_explicit_capabilities_extend_role(gate, make_caller) -> None:
    """Extra capabilities on the caller are honoured."""
    caller = make_caller(role="viewer", capabilities=["raid:edit"])

    assert gate.check(caller, "raid:edit")
    assert "raid:edit" in gate.capabilities(caller)


def test_describe_capability() -> None:
    assert describe_capability("raid:edit") == "edit raid"
    assert describe_capability("admin") == "admin"
