"""Usage and cost accounting for model calls."""

import threading
from collections import Counter
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from project_assistant.llm_client.models import ModelConfig
from project_assistant.llm_client.types import ModelTier
from project_assistant.telemetry import USAGE_RECORDED, get_logger
from project_assistant.telemetry.events import USAGE_RESET

log = get_logger(__name__)


class TierUsage(BaseModel):
    """Running totals for one tier."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    model_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0


class UsageSnapshot(BaseModel):
    """Read-only copy of the accountant's counters."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    model_calls: int
    input_tokens: int
    output_tokens: int
    cost_usd: float
    by_tier: dict[str, TierUsage] = Field(default_factory=dict)
    turns_by_path: dict[str, int] = Field(default_factory=dict)
    since: datetime


class UsageAccountant:
    """Accumulates token usage and cost per tier and turn counts per route.

    Rates come from the model config (USD per million tokens). Thread-safe;
    the lock is never held across an ``await``.

    Usage:
        accountant = UsageAccountant(load_model_config())
        cost = accountant.record(ModelTier.STANDARD, 1200, 300)
        accountant.record_turn("standard")
    """

    def __init__(self, model_config: ModelConfig) -> None:
        self.model_config = model_config
        self._lock = threading.Lock()
        self._tiers: dict[str, TierUsage] = {}
        self._turns: Counter[str] = Counter()
        self._since = datetime.now(timezone.utc)

    def record(self, tier: ModelTier, input_tokens: int, output_tokens: int) -> float:
        """Record one model call and return its cost in USD.

        Raises:
            KeyError: If the tier has no configured model.
        """
        cost = self.model_config.for_tier(tier).cost(input_tokens, output_tokens)
        with self._lock:
            usage = self._tiers.setdefault(tier.value, TierUsage())
            usage.model_calls += 1
            usage.input_tokens += input_tokens
            usage.output_tokens += output_tokens
            usage.cost_usd += cost
        log.info(
            USAGE_RECORDED,
            tier=tier.value,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=round(cost, 6),
        )
        return cost

    def record_turn(self, path: str) -> None:
        """Count one answered turn for a route path (local/streaming/standard)."""
        with self._lock:
            self._turns[path] += 1

    def snapshot(self) -> UsageSnapshot:
        """Return a consistent copy of all counters."""
        with self._lock:
            by_tier = {name: usage.model_copy() for name, usage in self._tiers.items()}
            turns = dict(self._turns)
            since = self._since
        return UsageSnapshot(
            model_calls=sum(u.model_calls for u in by_tier.values()),
            input_tokens=sum(u.input_tokens for u in by_tier.values()),
            output_tokens=sum(u.output_tokens for u in by_tier.values()),
            cost_usd=sum(u.cost_usd for u in by_tier.values()),
            by_tier=by_tier,
            turns_by_path=turns,
            since=since,
        )

    def reset(self) -> None:
        """Zero all counters."""
        with self._lock:
            self._tiers.clear()
            self._turns.clear()
            self._since = datetime.now(timezone.utc)
        log.info(USAGE_RESET)
