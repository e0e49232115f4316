"""Permission gate for tool invocations.

The gate answers one question: does this caller hold the capability a tool
requires? It does not implement row-level authorization; the data provider
still restricts every query to the caller's scope.
"""

from project_assistant.governance.models import CallerContext, PermissionsConfig
from project_assistant.telemetry import get_logger

log = get_logger(__name__)


class PermissionResult:
    """Result of a permission check."""

    def __init__(self, allowed: bool, reason: str = "") -> None:
        """Initialize permission result.

        Args:
            allowed: Whether permission is granted.
            reason: Reason for denial (if not allowed).
        """
        self.allowed = allowed
        self.reason = reason

    def __bool__(self) -> bool:  # noqa: D105
        return self.allowed

    def __repr__(self) -> str:  # noqa: D105
        return f"PermissionResult(allowed={self.allowed}, reason={self.reason!r})"


def describe_capability(capability: str) -> str:
    """Human wording for a capability, e.g. ``"raid:edit"`` -> ``"edit raid"``."""
    resource, _, action = capability.partition(":")
    return f"{action} {resource}" if action else capability


class PermissionGate:
    """Checks callers' capabilities against the role permission matrix."""

    def __init__(self, config: PermissionsConfig) -> None:
        """Initialize the gate.

        Args:
            config: Role permission matrix.
        """
        self.config = config

    def is_known_role(self, role: str) -> bool:
        """Whether the role appears in the permission matrix."""
        return self.config.capabilities_for(role) is not None

    def capabilities(self, caller: CallerContext) -> frozenset[str]:
        """All capabilities held by a caller (role grants plus explicit extras)."""
        granted = self.config.capabilities_for(caller.role) or frozenset()
        return granted | frozenset(caller.capabilities)

    def check(self, caller: CallerContext, capability: str | None) -> PermissionResult:
        """Check whether a caller may use a capability.

        Args:
            caller: The requesting caller.
            capability: Required capability, or None for unrestricted tools.

        Returns:
            PermissionResult; the reason is phrased for the end user.
        """
        if capability is None:
            return PermissionResult(allowed=True)

        if not self.is_known_role(caller.role) and capability not in caller.capabilities:
            return PermissionResult(allowed=False, reason=f"Unknown role '{caller.role}'")

        if capability in self.capabilities(caller):
            return PermissionResult(allowed=True)

        log.debug(
            "capability_missing",
            user_id=caller.user_id,
            role=caller.role,
            capability=capability,
        )
        return PermissionResult(
            allowed=False,
            reason=f"You don't have permission to {describe_capability(capability)}",
        )
