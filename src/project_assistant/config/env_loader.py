"""Deployment stage detection and layered .env loading.

The assistant service reads its secrets (model API keys, the service token)
from the process environment. Local deployments keep them in dotenv files at
the repository root; this module loads those files in a fixed order before
``AppConfig`` is built.
"""

import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from project_assistant.config.validators import project_root as default_project_root
from project_assistant.telemetry import get_logger

log = get_logger(__name__)

STAGE_VARIABLE = "APP_ENV"


class Environment(str, Enum):
    """Deployment stage the assistant service runs in."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


_STAGE_ALIASES: dict[str, Environment] = {
    "prod": Environment.PRODUCTION,
    "production": Environment.PRODUCTION,
    "stage": Environment.STAGING,
    "staging": Environment.STAGING,
    "test": Environment.TEST,
    "ci": Environment.TEST,
}


def get_environment() -> Environment:
    """Return the deployment stage named by ``APP_ENV``.

    Unknown or missing values mean development. This runs before settings
    exist, so it reads the process environment directly.
    """
    raw = os.getenv(STAGE_VARIABLE, "").strip().lower()
    return _STAGE_ALIASES.get(raw, Environment.DEVELOPMENT)


def dotenv_layers(root: Path, stage: Environment) -> list[Path]:
    """List candidate dotenv files from lowest to highest precedence.

    Args:
        root: Directory holding the files.
        stage: Deployment stage; its files sit above the shared ones.

    Returns:
        ``.env``, ``.env.local``, ``.env.<stage>`` and ``.env.<stage>.local``.
    """
    names = [".env", ".env.local", f".env.{stage.value}", f".env.{stage.value}.local"]
    return [root / name for name in names]


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load the dotenv layers that exist, without clobbering real variables.

    Each file only fills variables that are still unset, so files are applied
    from the highest precedence layer down and the process environment always
    wins.

    Args:
        project_root: Directory to search; the repository root when omitted.

    Returns:
        Names of the files that were loaded, highest precedence first.
    """
    root = project_root or default_project_root()
    stage = get_environment()

    loaded: list[str] = []
    for layer in reversed(dotenv_layers(root, stage)):
        if not layer.is_file():
            continue
        load_dotenv(layer, override=False)
        loaded.append(layer.name)

    log.debug("dotenv_layers_loaded", stage=stage.value, files=loaded, root=str(root))
    return loaded
