"""Pydantic models for caller identity, scope and the role permission matrix.

Capabilities are strings of the form ``"<resource>:<action>"`` such as
``"timesheets:submit"``. A role grants a set of them through the permission
matrix loaded from config/permissions.yaml; a caller may carry extra grants.
"""

from dataclasses import asdict, dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


@dataclass(frozen=True)
class Scope:
    """Tenant/project/caller restriction passed to the data provider.

    Every data-provider call and every cache key carries a Scope. It is
    derived from the CallerContext and never modified afterwards.

    Attributes:
        tenant_id: Organisation the caller belongs to.
        project_id: Project the conversation is about.
        user_id: Authenticated user identity.
        role: Caller's project role.
        resource_id: Caller's linked resource profile, if any.
    """

    tenant_id: str
    project_id: str
    user_id: str
    role: str
    resource_id: str | None = None

    @property
    def partition(self) -> str:
        """Cache partition shared by everyone working in the same project."""
        return f"{self.tenant_id}:{self.project_id}"

    def to_dict(self) -> dict[str, Any]:
        """Return the scope as a plain dict (for hashing and logging)."""
        return asdict(self)


class CallerContext(BaseModel):
    """Who is asking, and within which tenant/project.

    Supplied by the (already authenticated) web tier with every request.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore"
    )

    user_id: str = Field(..., min_length=1, description="Authenticated user identity")
    role: str = Field(..., min_length=1, description="Project role, e.g. supplier_pm")
    tenant_id: str = Field(..., min_length=1, description="Organisation identifier")
    project_id: str = Field(..., min_length=1, description="Current project identifier")
    resource_id: str | None = Field(None, description="Linked resource profile")
    capabilities: list[str] = Field(
        default_factory=list, description="Extra capabilities granted beyond the role"
    )

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: str) -> str:
        """Roles are matched case-insensitively."""
        return v.strip().lower()

    def scope(self) -> Scope:
        """Derive the data-provider scope for this caller."""
        return Scope(
            tenant_id=self.tenant_id,
            project_id=self.project_id,
            user_id=self.user_id,
            role=self.role,
            resource_id=self.resource_id,
        )


class PermissionsConfig(BaseModel):
    """Role permission matrix.

    This represents the structure of config/permissions.yaml after loading
    and validation.

    Attributes:
        roles: role -> resource -> allowed actions.
    """

    roles: dict[str, dict[str, list[str]]] = Field(
        ..., description="Allowed actions per resource, per role"
    )

    @field_validator("roles")
    @classmethod
    def lowercase_roles(cls, v: dict[str, dict[str, list[str]]]) -> dict[str, dict[str, list[str]]]:
        """Store role names lowercased to match CallerContext.role."""
        return {role.lower(): resources for role, resources in v.items()}

    def capabilities_for(self, role: str) -> frozenset[str] | None:
        """Expand a role into its capability set.

        Args:
            role: Role name (case-insensitive).

        Returns:
            Capabilities such as ``"raid:edit"``, or None if the role is unknown.
        """
        resources = self.roles.get(role.lower())
        if resources is None:
            return None
        return frozenset(
            f"{resource}:{action}" for resource, actions in resources.items() for action in actions
        )


_ALL_ACTIONS = ["view", "create", "edit", "delete", "submit", "validate", "approve", "signoff"]


def default_permissions_config() -> PermissionsConfig:
    """Built-in permission matrix used when config/permissions.yaml is unavailable."""
    view_only = {
        "timesheets": ["view"],
        "expenses": ["view"],
        "milestones": ["view"],
        "deliverables": ["view"],
        "tasks": ["view"],
        "raid": ["view"],
        "resources": ["view"],
        "budget": ["view"],
    }
    return PermissionsConfig(
        roles={
            "admin": {resource: list(_ALL_ACTIONS) for resource in view_only},
            "supplier_pm": {
                "timesheets": ["view", "create", "edit", "submit", "validate", "approve"],
                "expenses": ["view", "create", "edit", "submit", "validate", "approve"],
                "milestones": ["view", "create", "edit", "delete"],
                "deliverables": ["view", "create", "edit", "delete", "signoff"],
                "tasks": ["view", "create", "edit", "delete"],
                "raid": ["view", "create", "edit", "delete"],
                "resources": ["view"],
                "budget": ["view"],
            },
            "customer_pm": {
                **view_only,
                "timesheets": ["view", "validate", "approve"],
                "expenses": ["view", "validate", "approve"],
                "deliverables": ["view", "signoff"],
                "raid": ["view", "create", "edit"],
            },
            "supplier_finance": {
                **view_only,
                "timesheets": ["view", "approve"],
                "expenses": ["view", "approve"],
            },
            "customer_finance": {
                **view_only,
                "timesheets": ["view", "approve"],
                "expenses": ["view", "approve"],
            },
            "contributor": {
                **view_only,
                "timesheets": ["view", "create", "edit", "submit"],
                "expenses": ["view", "create", "edit", "submit"],
                "deliverables": ["view", "edit"],
                "tasks": ["view", "edit"],
                "raid": ["view", "create", "edit"],
            },
            "viewer": dict(view_only),
        }
    )
