"""Pydantic models for model tier configuration.

This module defines the schema for model configuration loaded from config/models.yaml.
"""

from pydantic import BaseModel, Field

from project_assistant.llm_client.types import ModelTier


class ModelDefinition(BaseModel):
    """Configuration for the model serving one tier.

    Attributes:
        id: Model identifier sent to the provider.
        endpoint: Optional base URL override for OpenAI-compatible backends.
        max_tokens: Output token cap per call.
        input_cost_per_million: USD charged per million input tokens.
        output_cost_per_million: USD charged per million output tokens.
        default_timeout: Request timeout in seconds.
        temperature: Sampling temperature (None uses backend default).
    """

    id: str = Field(..., description="Model identifier")
    endpoint: str | None = Field(None, description="Optional base URL override")
    max_tokens: int = Field(2048, ge=1, description="Maximum output tokens per call")
    input_cost_per_million: float = Field(..., ge=0, description="USD per 1M input tokens")
    output_cost_per_million: float = Field(..., ge=0, description="USD per 1M output tokens")
    default_timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Default sampling temperature for this tier.",
    )

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Compute the USD cost of one call at this tier's rates."""
        return (input_tokens / 1_000_000 * self.input_cost_per_million) + (
            output_tokens / 1_000_000 * self.output_cost_per_million
        )


class ModelConfig(BaseModel):
    """Complete model configuration.

    Attributes:
        tiers: Mapping of tier name ("streaming", "standard") to its model.
    """

    tiers: dict[str, ModelDefinition] = Field(..., description="Model configurations by tier")

    def for_tier(self, tier: ModelTier) -> ModelDefinition:
        """Return the model for a tier.

        Raises:
            KeyError: If the tier is not configured.
        """
        try:
            return self.tiers[tier.value]
        except KeyError:
            raise KeyError(f"No model configured for tier: {tier.value}") from None


def default_model_config() -> ModelConfig:
    """Built-in tiers used when config/models.yaml is unavailable."""
    return ModelConfig(
        tiers={
            ModelTier.STREAMING.value: ModelDefinition(
                id="claude-haiku-4-5",
                max_tokens=1024,
                input_cost_per_million=1.0,
                output_cost_per_million=5.0,
                default_timeout=20.0,
            ),
            ModelTier.STANDARD.value: ModelDefinition(
                id="claude-sonnet-4-5-20250929",
                max_tokens=2048,
                input_cost_per_million=3.0,
                output_cost_per_million=15.0,
                default_timeout=45.0,
            ),
        }
    )
