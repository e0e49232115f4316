"""Load the model tier table (config/models.yaml).

Every routing tier (local answers never reach a model, so only ``streaming``
and ``standard``) must name a model, its token limits and its per-token
prices; the usage accountant prices turns from the same table.
"""

from pathlib import Path

import structlog

from project_assistant.config.loader import ConfigLoadError, load_validated
from project_assistant.llm_client.models import ModelConfig
from project_assistant.llm_client.types import ModelTier

log = structlog.get_logger(__name__)


class ModelConfigError(ConfigLoadError):
    """Raised when model configuration cannot be loaded or is invalid."""


def load_model_config(config_path: Path | str | None = None) -> ModelConfig:
    """Load and validate the model tier table.

    Args:
        config_path: Path to models.yaml. If None, uses
            settings.model_config_path.

    Returns:
        Validated ModelConfig.

    Raises:
        ModelConfigError: If the file cannot be loaded or validated, or if a
            routing tier is missing.

    Example:
        >>> config = load_model_config("config/models.yaml")
        >>> config.tiers["standard"].id
        'claude-sonnet-4-5-20250929'
    """
    if config_path is None:
        from project_assistant.config import settings  # noqa: PLC0415

        config_path = settings.model_config_path

    config_path = Path(config_path)
    config = load_validated(config_path, ModelConfig, ModelConfigError)

    missing = [tier.value for tier in ModelTier if tier.value not in config.tiers]
    if missing:
        raise ModelConfigError(f"{config_path.name} is missing tiers: {missing}")

    log.info(
        "model_config_loaded",
        tiers=sorted(config.tiers),
        model_ids=[model.id for model in config.tiers.values()],
    )
    return config
