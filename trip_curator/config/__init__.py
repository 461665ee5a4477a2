"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    ConcurrencyConfig,
    GlobalConfig,
    PipelineConfig,
    PricingConfig,
    ProviderConfig,
    RankingConfig,
    RankingWeights,
    TokenPrice,
    ValidationConfig,
)

__all__ = [
    "ConcurrencyConfig",
    "ConfigLocator",
    "ConfigRepository",
    "GlobalConfig",
    "PipelineConfig",
    "PricingConfig",
    "ProviderConfig",
    "RankingConfig",
    "RankingWeights",
    "TokenPrice",
    "ValidationConfig",
]
