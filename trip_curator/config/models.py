"""Pydantic models describing pipeline configuration."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ConcurrencyConfig(BaseModel):
    """Limiter sizes: one shared default plus optional per-provider overrides."""

    default_limit: int = Field(default=3, ge=1)
    per_provider: dict[str, int] = Field(default_factory=dict)

    @field_validator("per_provider")
    @classmethod
    def _positive_limits(cls, value: dict[str, int]) -> dict[str, int]:
        for name, limit in value.items():
            if isinstance(limit, bool) or limit < 1:
                raise ValueError(f"Concurrency limit for {name} must be a positive integer")
        return value


class ProviderConfig(BaseModel):
    """Runtime knobs for a single discovery provider."""

    enabled: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_results: int = Field(default=10, ge=1)


class ValidationConfig(BaseModel):
    """Verification source settings and strategy."""

    enabled: bool = True
    strategy: Literal["per_item", "batch"] = "per_item"
    batch_size: int = Field(default=5, ge=1, le=20)
    timeout_seconds: float = Field(default=3.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    backoff_seconds: float = Field(default=0.5, ge=0)
    max_validations: int = Field(default=10, ge=0)
    concurrency: int = Field(default=3, ge=1)
    provider: str = "perplexity"
    model: str = "sonar"
    base_url: str = "https://api.perplexity.ai"
    api_key_env: str = "PERPLEXITY_API_KEY"


class RankingWeights(BaseModel):
    relevance: float = Field(default=0.35, ge=0)
    credibility: float = Field(default=0.30, ge=0)
    recency: float = Field(default=0.20, ge=0)
    diversity: float = Field(default=0.15, ge=0)

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "RankingWeights":
        total = self.relevance + self.credibility + self.recency + self.diversity
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Ranking weights must sum to 1.0 (got {total:.3f})")
        return self


class RankingConfig(BaseModel):
    weights: RankingWeights = Field(default_factory=RankingWeights)
    rescore: bool = True
    top_n: int = Field(default=30, ge=1)
    max_per_type: int = Field(default=10, ge=1)
    similarity_threshold: float = Field(default=0.85, gt=0, le=1)


class TokenPrice(BaseModel):
    """USD per million tokens."""

    input: float = Field(ge=0)
    output: float = Field(ge=0)


def _default_token_prices() -> dict[str, TokenPrice]:
    return {
        "perplexity": TokenPrice(input=3.0, output=15.0),
        "gemini": TokenPrice(input=0.5, output=3.0),
        "openai": TokenPrice(input=10.0, output=30.0),
    }


class PricingConfig(BaseModel):
    tokens: dict[str, TokenPrice] = Field(default_factory=_default_token_prices)
    per_call: dict[str, float] = Field(default_factory=lambda: {"places": 0.032})
    per_unit: dict[str, float] = Field(default_factory=lambda: {"youtube": 0.0})


class PipelineConfig(BaseModel):
    continue_on_error: bool = True
    export_formats: list[Literal["json", "csv"]] = Field(default_factory=lambda: ["json"])


class GlobalConfig(BaseModel):
    """Global controls shared across runs."""

    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    enable_progress_bar: bool = True

    @field_validator("providers", mode="before")
    @classmethod
    def _coerce_providers(cls, value: Any) -> Any:
        if value is None:
            return {}
        return value

    def provider(self, name: str) -> ProviderConfig:
        return self.providers.get(name) or ProviderConfig()


__all__ = [
    "ConcurrencyConfig",
    "GlobalConfig",
    "PipelineConfig",
    "PricingConfig",
    "ProviderConfig",
    "RankingConfig",
    "RankingWeights",
    "TokenPrice",
    "ValidationConfig",
]
