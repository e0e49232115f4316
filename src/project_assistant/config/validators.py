"""Value checks shared by ``AppConfig`` and the pre-settings bootstrap helpers."""

from collections.abc import Iterable
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")
MODEL_PROVIDERS = ("anthropic", "openai_compatible")


def _one_of(setting: str, value: str, allowed: Iterable[str]) -> str:
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValueError(f"{setting} must be one of {list(allowed)}, got {value!r}")
    return value


def validate_log_level(value: str) -> str:
    """Uppercase ``value`` and check it is a stdlib logging level name.

    Raises:
        ValueError: For anything outside ``LOG_LEVELS``.
    """
    return _one_of("log_level", value.strip().upper(), LOG_LEVELS)


def validate_log_format(value: str) -> str:
    """Lowercase ``value`` and check it names a console renderer."""
    return _one_of("log_format", value.strip().lower(), LOG_FORMATS)


def validate_model_provider(value: str) -> str:
    """Normalize a model backend name (``OpenAI-Compatible`` -> ``openai_compatible``).

    Raises:
        ValueError: If the backend is not supported.
    """
    return _one_of("model_provider", value.strip().lower().replace("-", "_"), MODEL_PROVIDERS)


def project_root() -> Path:
    """Return the repository root (the directory holding ``src/`` and ``config/``)."""
    return Path(__file__).resolve().parents[3]


def resolve_path(value: Path | str) -> Path:
    """Anchor relative paths at the repository root.

    Args:
        value: Path from the environment or a default.

    Returns:
        An absolute, resolved path.
    """
    path = Path(value)
    if not path.is_absolute():
        path = project_root() / path
    return path.resolve()
