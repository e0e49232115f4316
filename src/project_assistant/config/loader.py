"""YAML reading shared by the model and permission loaders.

Both files follow the same path: read a mapping from disk, validate it
against a pydantic schema and surface every problem as a typed
``ConfigLoadError`` subclass naming the file.
"""

from pathlib import Path
from typing import Any, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

log = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class ConfigLoadError(Exception):
    """Base exception for configuration loading errors."""


def load_yaml_file(
    file_path: Path, error_class: type[ConfigLoadError] = ConfigLoadError
) -> dict[str, Any]:
    """Read a YAML document whose top level is a mapping.

    Args:
        file_path: File to read.
        error_class: Raised for every failure, so callers can tell which
            config file broke.

    Returns:
        The parsed mapping; an empty document yields ``{}``.

    Raises:
        error_class: The file is missing, unreadable, not YAML, or its top
            level is not a mapping.
    """
    if not file_path.is_file():
        raise error_class(f"Configuration file not found: {file_path}")
    try:
        text = file_path.read_text(encoding="utf-8")
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise error_class(f"{file_path} is not valid YAML: {e}") from None
    except OSError as e:
        raise error_class(f"Could not read {file_path}: {e}") from None

    if document is None:
        log.debug("config_file_empty", file_path=str(file_path))
        return {}
    if not isinstance(document, dict):
        raise error_class(
            f"{file_path} must contain a mapping, found {type(document).__name__}"
        )
    return document


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic error as ``a -> b: message`` lines, one per problem."""
    return "\n".join(
        f"{' -> '.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


def load_validated(
    file_path: Path, schema: type[SchemaT], error_class: type[ConfigLoadError]
) -> SchemaT:
    """Read ``file_path`` and validate it against ``schema``.

    Args:
        file_path: YAML file to load.
        schema: Pydantic model describing the file.
        error_class: Exception raised for read and validation failures.

    Returns:
        The validated model instance.
    """
    log.info("loading_config_file", file_path=str(file_path), schema=schema.__name__)
    content = load_yaml_file(file_path, error_class=error_class)
    try:
        return schema.model_validate(content)
    except ValidationError as e:
        raise error_class(
            f"{file_path.name} failed validation:\n{format_validation_error(e)}"
        ) from None
