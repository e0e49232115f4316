"""Model client module.

Provides the ModelProvider contract, its Anthropic and OpenAI-compatible
implementations, and usage/cost accounting.

Providers are imported from their modules directly
(``project_assistant.llm_client.claude``, ``project_assistant.llm_client.client``)
so that importing this package does not pull in the SDKs.
"""

from project_assistant.llm_client.cost_tracker import TierUsage, UsageAccountant, UsageSnapshot
from project_assistant.llm_client.models import ModelConfig, ModelDefinition, default_model_config
from project_assistant.llm_client.provider import ModelProvider
from project_assistant.llm_client.types import (
    ModelClientError,
    ModelConnectionError,
    ModelInvalidResponse,
    ModelRateLimit,
    ModelResponse,
    ModelServerError,
    ModelStreamEvent,
    ModelTier,
    ModelTimeout,
    TokenUsage,
    ToolCall,
)

__all__ = [
    "ModelProvider",
    "ModelConfig",
    "ModelDefinition",
    "default_model_config",
    "UsageAccountant",
    "UsageSnapshot",
    "TierUsage",
    "ModelTier",
    "ModelResponse",
    "ModelStreamEvent",
    "TokenUsage",
    "ToolCall",
    "ModelClientError",
    "ModelConnectionError",
    "ModelInvalidResponse",
    "ModelRateLimit",
    "ModelServerError",
    "ModelTimeout",
]
