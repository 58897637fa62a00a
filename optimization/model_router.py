"""
Model router: one shared (provider, tier) → model identifier table.

Adapters never hardcode model names; they ask the router, so the tier
mapping cannot drift between providers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from loguru import logger

from config.constants import DEFAULT_MODEL_TABLE
from core.enums import ModelProvider, SubscriptionTier


@dataclass(frozen=True)
class RoutingDecision:
    provider: ModelProvider
    tier: SubscriptionTier
    model: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "provider": self.provider.value,
            "tier": self.tier.value,
            "model": self.model,
        }


class ModelRouter:
    """
    Tier-gated model lookup.

    Paid callers receive a provider's higher-capability model; free and
    guest callers receive the lower-cost model of the same provider.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None):
        self._table: Dict[Tuple[ModelProvider, SubscriptionTier], str] = dict(DEFAULT_MODEL_TABLE)
        for key, model in (overrides or {}).items():
            provider_name, _, tier_name = key.partition(":")
            try:
                entry = (ModelProvider(provider_name), SubscriptionTier(tier_name))
            except ValueError:
                logger.warning(f"Ignoring unknown model override key | key={key}")
                continue
            if model:
                self._table[entry] = model

        logger.info(f"ModelRouter initialized | entries={len(self._table)}")

    def select_model(self, provider: ModelProvider, tier: SubscriptionTier) -> str:
        try:
            return self._table[(provider, tier)]
        except KeyError:
            # Unmapped tiers get the cheapest model of the provider.
            return self._table[(provider, SubscriptionTier.FREE)]

    def route(self, provider: ModelProvider, tier: SubscriptionTier) -> RoutingDecision:
        return RoutingDecision(provider=provider, tier=tier, model=self.select_model(provider, tier))

    def table(self) -> Dict[str, str]:
        return {f"{p.value}:{t.value}": model for (p, t), model in sorted(self._table.items())}
