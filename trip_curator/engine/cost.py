"""Accumulate provider usage for a run and price it."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Dict

from ..config.models import PricingConfig
from ..schemas.cost import CostBreakdown, ProviderCost, TokenUsage

TOKENS_PER_MILLION = 1_000_000


@dataclass(slots=True)
class _Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    units: int = 0
    has_tokens: bool = False
    has_calls: bool = False
    has_units: bool = False


class CostTracker:
    """Collect usage in each provider's native unit (tokens, calls or quota units)."""

    def __init__(self, pricing: PricingConfig | None = None, run_id: str | None = None) -> None:
        self.pricing = pricing or PricingConfig()
        self.run_id = run_id
        self._usage: Dict[str, _Usage] = {}
        self._lock = Lock()

    def _entry(self, provider: str) -> _Usage:
        return self._usage.setdefault(provider, _Usage())

    def record_tokens(self, provider: str, input_tokens: int = 0, output_tokens: int = 0) -> None:
        with self._lock:
            entry = self._entry(provider)
            entry.input_tokens += max(0, int(input_tokens))
            entry.output_tokens += max(0, int(output_tokens))
            entry.has_tokens = True

    def record_calls(self, provider: str, count: int = 1) -> None:
        with self._lock:
            entry = self._entry(provider)
            entry.calls += max(0, int(count))
            entry.has_calls = True

    def record_units(self, provider: str, units: int) -> None:
        with self._lock:
            entry = self._entry(provider)
            entry.units += max(0, int(units))
            entry.has_units = True

    def merge(self, breakdown: CostBreakdown) -> None:
        """Fold a previously persisted breakdown back in (used on resume)."""

        for name, provider in breakdown.providers.items():
            if provider.tokens is not None:
                self.record_tokens(name, provider.tokens.input, provider.tokens.output)
            if provider.calls is not None:
                self.record_calls(name, provider.calls)
            if provider.units is not None:
                self.record_units(name, provider.units)

    # ------------------------------------------------------------------
    def _price(self, provider: str, usage: _Usage) -> float:
        cost = 0.0
        token_price = self.pricing.tokens.get(provider)
        if token_price is not None:
            cost += usage.input_tokens / TOKENS_PER_MILLION * token_price.input
            cost += usage.output_tokens / TOKENS_PER_MILLION * token_price.output
        cost += usage.calls * self.pricing.per_call.get(provider, 0.0)
        cost += usage.units * self.pricing.per_unit.get(provider, 0.0)
        return round(cost, 6)

    def breakdown(self) -> CostBreakdown:
        with self._lock:
            usage = dict(self._usage)
        providers = {}
        for name in sorted(usage):
            entry = usage[name]
            providers[name] = ProviderCost(
                tokens=TokenUsage(input=entry.input_tokens, output=entry.output_tokens)
                if entry.has_tokens
                else None,
                calls=entry.calls if entry.has_calls else None,
                units=entry.units if entry.has_units else None,
                cost=self._price(name, entry),
            )
        return CostBreakdown(run_id=self.run_id, providers=providers)


__all__ = ["CostTracker"]
