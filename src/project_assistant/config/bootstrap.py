"""Logging settings read before ``AppConfig`` exists.

Logging is configured on the first ``get_logger`` call, and settings modules
log while loading, so these values come straight from the environment. Keep
this module free of telemetry imports.
"""

import os
from collections.abc import Callable
from pathlib import Path

from project_assistant.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
)


def _checked_env(name: str, default: str, check: Callable[[str], str]) -> str:
    try:
        return check(os.getenv(name, default))
    except ValueError:
        return check(default)


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """Console level from ``APP_LOG_LEVEL``; invalid values fall back to ``default``."""
    return _checked_env("APP_LOG_LEVEL", default, validate_log_level)


def get_bootstrap_log_format(default: str = "console") -> str:
    """Console renderer from ``APP_LOG_FORMAT`` ("json" or "console")."""
    return _checked_env("APP_LOG_FORMAT", default, validate_log_format)


def get_bootstrap_log_dir(default: str = "telemetry/logs") -> Path:
    """JSON log directory from ``ASSISTANT_LOG_DIR``, anchored at the repository root."""
    return resolve_path(os.getenv("ASSISTANT_LOG_DIR", default))
