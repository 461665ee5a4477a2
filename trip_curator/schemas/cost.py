"""Per-run provider usage and cost."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, computed_field

from .common import Record
from .versions import SCHEMA_VERSIONS


class TokenUsage(Record):
    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)


class ProviderCost(Record):
    """Usage in the provider's own unit plus its USD cost."""

    tokens: TokenUsage | None = None
    calls: int | None = Field(default=None, ge=0)
    units: int | None = Field(default=None, ge=0)
    cost: float = Field(default=0.0, ge=0)


class CostBreakdown(Record):
    schema_version: int = SCHEMA_VERSIONS["cost"]
    run_id: str | None = None
    providers: dict[str, ProviderCost] = Field(default_factory=dict)
    currency: Literal["USD"] = "USD"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return round(sum(provider.cost for provider in self.providers.values()), 6)


__all__ = ["CostBreakdown", "ProviderCost", "TokenUsage"]
