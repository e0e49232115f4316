"""Unified configuration management for the Project Assistant.

This module provides a single source of truth for all configuration,
integrating environment variables, YAML files, and defaults.
"""

from project_assistant.config.env_loader import Environment, get_environment
from project_assistant.config.loader import ConfigLoadError
from project_assistant.config.model_loader import ModelConfigError, load_model_config
from project_assistant.config.permissions_loader import (
    PermissionsConfigError,
    load_permissions_config,
)
from project_assistant.config.settings import AppConfig, get_settings, load_app_config

# Singleton instance
settings = get_settings()

__all__ = [
    # App-level settings
    "settings",
    "AppConfig",
    "get_settings",
    "load_app_config",
    "Environment",
    "get_environment",
    # Configuration loaders
    "load_model_config",
    "load_permissions_config",
    # Exception classes
    "ConfigLoadError",
    "ModelConfigError",
    "PermissionsConfigError",
]
