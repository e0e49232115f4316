"""Application configuration settings.

This module provides the AppConfig class and settings singleton.
"""

from pathlib import Path

import structlog
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from project_assistant.config.env_loader import Environment, get_environment, load_env_files
from project_assistant.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_model_provider,
)

log = structlog.get_logger(__name__)


class AppConfig(BaseSettings):
    """Unified application configuration.

    Loads configuration from environment variables (``ASSISTANT_`` prefix),
    .env files and defaults. Validates all values using Pydantic.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded manually via env_loader to keep the priority order
        env_prefix="ASSISTANT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),  # model_* field names are ours
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, alias="APP_DEBUG", description="Debug mode flag")

    # Application
    project_name: str = Field(default="Project Assistant", description="Project name")
    version: str = Field(default="0.1.0", description="Application version")

    # Telemetry
    log_dir: Path = Field(default=Path("telemetry/logs"), description="Log directory path")
    log_level: str = Field(
        default="INFO",
        alias="APP_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="console", alias="APP_LOG_FORMAT", description="Console log format (json or console)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("log_dir", "model_config_path", "permissions_config_path", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str) -> Path:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    # Rate limiting (per caller, fixed window)
    rate_limit_max_requests: int = Field(
        default=20, ge=1, description="Requests admitted per caller per window"
    )
    rate_limit_window_seconds: float = Field(
        default=60.0, gt=0, description="Rate limit window length in seconds"
    )

    # Tool result cache
    cache_ttl_seconds: float = Field(
        default=300.0, gt=0, description="Lifetime of a cached read-tool result"
    )

    # Tool execution
    tool_call_timeout_seconds: float = Field(
        default=4.0, gt=0, description="Timeout for a single data-provider call"
    )
    tool_max_retries: int = Field(
        default=2, ge=0, le=5, description="Retries for read tools on transient failures"
    )
    tool_retry_backoff_seconds: float = Field(
        default=0.2, ge=0, description="Base delay for exponential retry backoff"
    )

    # Dispatch
    dispatch_turn_timeout_seconds: float = Field(
        default=8.0, gt=0, description="Wall-clock ceiling for one batch of tool calls"
    )
    dispatch_max_concurrency: int = Field(
        default=10, ge=1, description="Maximum in-flight tool calls per turn"
    )

    # Orchestrator
    orchestrator_max_tool_iterations: int = Field(
        default=5,
        ge=1,
        description="Maximum model/tool round trips per request (prevents tool loops)",
    )
    conversation_history_max_tokens: int = Field(
        default=8000, ge=256, description="Estimated token budget for replayed history"
    )
    action_ticket_ttl_seconds: float = Field(
        default=300.0, gt=0, description="How long a shown action preview can be confirmed"
    )

    # Model provider
    model_provider: str = Field(
        default="anthropic", description="Model backend: anthropic or openai_compatible"
    )
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    llm_base_url: str = Field(
        default="http://localhost:8000/v1",
        description="Base URL for an OpenAI-compatible chat/completions endpoint",
    )
    llm_api_key: str | None = Field(
        default=None, description="Bearer token for the OpenAI-compatible endpoint"
    )
    llm_max_retries: int = Field(default=2, ge=0, description="Model call retry attempts")

    @field_validator("model_provider")
    @classmethod
    def validate_model_provider(cls, v: str) -> str:
        """Validate model provider."""
        return validate_model_provider(v)

    # Paths (for domain config loaders)
    model_config_path: Path = Field(
        default=Path("config/models.yaml"), description="Path to model tier config file"
    )
    permissions_config_path: Path = Field(
        default=Path("config/permissions.yaml"), description="Path to role permission matrix"
    )

    # Data provider
    data_provider_url: str | None = Field(
        default=None,
        description="PostgREST base URL. When unset an in-memory provider is used",
    )
    data_provider_key: str | None = Field(default=None, description="PostgREST API key")

    # Service Configuration
    service_host: str = Field(default="0.0.0.0", description="Service host address")
    service_port: int = Field(default=9000, description="Service port number")
    service_url: str = Field(
        default="http://localhost:9000", description="Base URL the CLI uses to reach the service"
    )
    service_api_key: str | None = Field(
        default=None, description="Shared bearer token required on chat endpoints when set"
    )

    @model_validator(mode="after")
    def check_dispatch_ceiling(self) -> "AppConfig":
        """Ensure the turn ceiling leaves room for at least one tool call."""
        if self.dispatch_turn_timeout_seconds < self.tool_call_timeout_seconds:
            raise ValueError(
                "dispatch_turn_timeout_seconds must be >= tool_call_timeout_seconds "
                f"({self.dispatch_turn_timeout_seconds} < {self.tool_call_timeout_seconds})"
            )
        return self


_settings: AppConfig | None = None


def load_app_config() -> AppConfig:
    """Load and validate application configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates AppConfig instance (reads from environment variables)
    3. Validates all values using Pydantic
    4. Logs configuration loading using structlog

    Returns:
        Validated AppConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_app_config", environment=get_environment().value)

    load_env_files()

    try:
        config = AppConfig()
        log.info(
            "app_config_loaded",
            environment=config.environment.value,
            debug=config.debug,
            log_level=config.log_level,
            model_provider=config.model_provider,
            rate_limit=f"{config.rate_limit_max_requests}/{config.rate_limit_window_seconds}s",
        )
        return config
    except Exception as e:
        log.error("app_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise


def get_settings() -> AppConfig:
    """Get the application settings singleton.

    Returns:
        AppConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_app_config()
    return _settings
