"""Assembly of the process-wide service objects.

Everything stateful (cache, rate limiter, confirmation ledger, usage
accountant) is created here and injected, so tests build isolated instances
instead of sharing module singletons.
"""

from dataclasses import dataclass
from pathlib import Path

from project_assistant.actions.confirmation import ConfirmationLedger, ConfirmationProtocol
from project_assistant.actions.handlers import register_action_tools
from project_assistant.config.model_loader import load_model_config
from project_assistant.config.permissions_loader import load_permissions_config
from project_assistant.config.settings import AppConfig
from project_assistant.data.memory import InMemoryDataProvider
from project_assistant.data.postgrest import PostgrestDataProvider
from project_assistant.data.provider import DataProvider
from project_assistant.governance.models import PermissionsConfig, default_permissions_config
from project_assistant.governance.permissions import PermissionGate
from project_assistant.governance.rate_limiter import RateLimiter
from project_assistant.llm_client.cost_tracker import UsageAccountant
from project_assistant.llm_client.models import ModelConfig, default_model_config
from project_assistant.llm_client.provider import ModelProvider
from project_assistant.orchestrator.orchestrator import Orchestrator
from project_assistant.orchestrator.routing import ResponseRouter
from project_assistant.telemetry import get_logger
from project_assistant.tools.cache import ToolResultCache
from project_assistant.tools.dispatch import DispatchScheduler
from project_assistant.tools.executor import ToolExecutor
from project_assistant.tools.queries import register_query_tools
from project_assistant.tools.registry import ToolRegistry

log = get_logger(__name__)


@dataclass
class AssistantServices:
    """Everything a running assistant needs, wired together."""

    settings: AppConfig
    model_config: ModelConfig
    permissions: PermissionsConfig
    data_provider: DataProvider
    model_provider: ModelProvider
    registry: ToolRegistry
    gate: PermissionGate
    cache: ToolResultCache
    rate_limiter: RateLimiter
    ledger: ConfirmationLedger
    accountant: UsageAccountant
    executor: ToolExecutor
    scheduler: DispatchScheduler
    router: ResponseRouter
    orchestrator: Orchestrator

    async def aclose(self) -> None:
        """Release network clients held by the providers."""
        await self.model_provider.aclose()
        await self.data_provider.aclose()


def _load_model_config(path: Path) -> ModelConfig:
    if not path.exists():
        log.warning("model_config_missing_using_defaults", path=str(path))
        return default_model_config()
    return load_model_config(path)


def _load_permissions(path: Path) -> PermissionsConfig:
    if not path.exists():
        log.warning("permissions_config_missing_using_defaults", path=str(path))
        return default_permissions_config()
    return load_permissions_config(path)


def build_data_provider(settings: AppConfig) -> DataProvider:
    """PostgREST when a URL is configured, otherwise an empty in-memory store."""
    if settings.data_provider_url:
        if not settings.data_provider_key:
            raise ValueError(
                "Data provider key not configured. Set ASSISTANT_DATA_PROVIDER_KEY environment variable."
            )
        return PostgrestDataProvider(
            base_url=settings.data_provider_url,
            api_key=settings.data_provider_key,
            timeout_seconds=settings.tool_call_timeout_seconds,
        )
    log.warning("data_provider_not_configured_using_memory")
    return InMemoryDataProvider()


def build_model_provider(settings: AppConfig, model_config: ModelConfig) -> ModelProvider:
    """Provider selected by ``settings.model_provider``."""
    if settings.model_provider == "openai_compatible":
        from project_assistant.llm_client.client import ChatCompletionsProvider  # noqa: PLC0415

        return ChatCompletionsProvider(
            base_url=settings.llm_base_url,
            model_config=model_config,
            api_key=settings.llm_api_key,
            max_retries=settings.llm_max_retries,
        )

    from project_assistant.llm_client.claude import ClaudeProvider  # noqa: PLC0415

    return ClaudeProvider(
        api_key=settings.anthropic_api_key,
        model_config=model_config,
        max_retries=settings.llm_max_retries,
    )


def build_services(
    settings: AppConfig,
    *,
    model_provider: ModelProvider | None = None,
    data_provider: DataProvider | None = None,
    model_config: ModelConfig | None = None,
    permissions: PermissionsConfig | None = None,
) -> AssistantServices:
    """Wire up every component from settings.

    Args:
        settings: Application settings.
        model_provider: Use this provider instead of building one (tests).
        data_provider: Use this provider instead of building one (tests).
        model_config: Tier config; loaded from ``settings.model_config_path`` if None.
        permissions: Role matrix; loaded from ``settings.permissions_config_path`` if None.

    Returns:
        AssistantServices with a ready Orchestrator.

    Raises:
        ConfigLoadError: If a config file exists but is invalid.
        ValueError: If a required credential is missing.
    """
    model_config = model_config or _load_model_config(settings.model_config_path)
    permissions = permissions or _load_permissions(settings.permissions_config_path)
    data_provider = data_provider or build_data_provider(settings)
    model_provider = model_provider or build_model_provider(settings, model_config)

    registry = ToolRegistry()
    register_query_tools(registry, data_provider)
    register_action_tools(registry, data_provider)

    gate = PermissionGate(permissions)
    cache = ToolResultCache(ttl_seconds=settings.cache_ttl_seconds)
    rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    ledger = ConfirmationLedger(ttl_seconds=settings.action_ticket_ttl_seconds)
    accountant = UsageAccountant(model_config)
    executor = ToolExecutor(
        registry=registry,
        gate=gate,
        cache=cache,
        confirmation=ConfirmationProtocol(ledger),
        default_timeout_seconds=settings.tool_call_timeout_seconds,
        max_retries=settings.tool_max_retries,
        retry_backoff_seconds=settings.tool_retry_backoff_seconds,
    )
    scheduler = DispatchScheduler(
        executor,
        ceiling_seconds=settings.dispatch_turn_timeout_seconds,
        max_concurrency=settings.dispatch_max_concurrency,
    )
    router = ResponseRouter()
    orchestrator = Orchestrator(
        router=router,
        provider=model_provider,
        registry=registry,
        scheduler=scheduler,
        gate=gate,
        rate_limiter=rate_limiter,
        accountant=accountant,
        max_tool_iterations=settings.orchestrator_max_tool_iterations,
        history_max_tokens=settings.conversation_history_max_tokens,
    )

    log.info(
        "services_built",
        tools=len(registry),
        roles=len(permissions.roles),
        data_provider=type(data_provider).__name__,
        model_provider=type(model_provider).__name__,
    )
    return AssistantServices(
        settings=settings,
        model_config=model_config,
        permissions=permissions,
        data_provider=data_provider,
        model_provider=model_provider,
        registry=registry,
        gate=gate,
        cache=cache,
        rate_limiter=rate_limiter,
        ledger=ledger,
        accountant=accountant,
        executor=executor,
        scheduler=scheduler,
        router=router,
        orchestrator=orchestrator,
    )
