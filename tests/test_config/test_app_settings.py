"""Tests for AppConfig validation and defaults."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from project_assistant.config.settings import AppConfig


def test_defaults_are_sane() -> None:
    """Defaults describe a runnable local service."""
    config = AppConfig(service_api_key=None, data_provider_url=None)

    assert config.rate_limit_max_requests >= 1
    assert config.cache_ttl_seconds > 0
    assert config.dispatch_turn_timeout_seconds >= config.tool_call_timeout_seconds
    assert config.model_config_path.is_absolute()
    assert config.permissions_config_path.name == "permissions.yaml"


def test_model_provider_is_normalized() -> None:
    """Provider names are case and dash insensitive."""
    config = AppConfig(model_provider="OpenAI-Compatible")

    assert config.model_provider == "openai_compatible"


def test_unknown_model_provider_rejected() -> None:
    """Unsupported providers fail validation."""
    with pytest.raises(ValidationError, match="model_provider"):
        AppConfig(model_provider="carrier-pigeon")


def test_dispatch_ceiling_must_cover_one_tool_call() -> None:
    """A turn ceiling shorter than one tool timeout is a configuration error."""
    with pytest.raises(ValidationError, match="dispatch_turn_timeout_seconds"):
        AppConfig(tool_call_timeout_seconds=5.0, dispatch_turn_timeout_seconds=2.0)


def test_rate_limit_must_be_positive() -> None:
    """Zero requests per window is rejected."""
    with pytest.raises(ValidationError):
        AppConfig(rate_limit_max_requests=0)


def test_environment_variables_override_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """ASSISTANT_-prefixed variables are read."""
    monkeypatch.setenv("ASSISTANT_RATE_LIMIT_MAX_REQUESTS", "7")
    monkeypatch.setenv("ASSISTANT_CACHE_TTL_SECONDS", "30")

    config = AppConfig()

    assert config.rate_limit_max_requests == 7
    assert config.cache_ttl_seconds == 30.0


def test_absolute_config_paths_are_kept(tmp_path: Path) -> None:
    """Absolute paths are kept as given."""
    config = AppConfig(model_config_path=tmp_path / "models.yaml")

    assert config.model_config_path == tmp_path / "models.yaml"
