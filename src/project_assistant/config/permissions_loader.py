"""Load and validate the role permission matrix from YAML.

The matrix maps each project role to the actions it may take on each
resource (timesheets, expenses, milestones, ...). Tool specs name the
capability they need; the PermissionGate checks it against this matrix.
"""

from pathlib import Path

import structlog

from project_assistant.config.loader import ConfigLoadError, load_validated
from project_assistant.governance.models import PermissionsConfig

log = structlog.get_logger(__name__)


class PermissionsConfigError(ConfigLoadError):
    """Raised when the permission matrix cannot be loaded or is invalid."""


def load_permissions_config(config_path: Path | str | None = None) -> PermissionsConfig:
    """Load and validate config/permissions.yaml.

    Args:
        config_path: Path to the YAML file. If None, uses
            settings.permissions_config_path.

    Returns:
        Validated PermissionsConfig.

    Raises:
        PermissionsConfigError: If the file is missing, malformed, or defines no roles.
    """
    if config_path is None:
        from project_assistant.config import settings  # noqa: PLC0415

        config_path = settings.permissions_config_path

    config_path = Path(config_path)
    config = load_validated(config_path, PermissionsConfig, PermissionsConfigError)

    if not config.roles:
        raise PermissionsConfigError(f"No roles defined in {config_path}")

    log.info("permissions_config_loaded", roles=sorted(config.roles))
    return config
