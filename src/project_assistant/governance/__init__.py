"""Governance: caller identity, permissions and admission control.

This module provides:
- CallerContext / Scope (who is asking, and where)
- PermissionGate (capability checks against the role matrix)
- RateLimiter (per-caller fixed-window admission)
"""

from project_assistant.governance.models import (
    CallerContext,
    PermissionsConfig,
    Scope,
    default_permissions_config,
)
from project_assistant.governance.permissions import PermissionGate, PermissionResult
from project_assistant.governance.rate_limiter import RateDecision, RateLimiter

__all__ = [
    "CallerContext",
    "Scope",
    "PermissionsConfig",
    "default_permissions_config",
    "PermissionGate",
    "PermissionResult",
    "RateLimiter",
    "RateDecision",
]
