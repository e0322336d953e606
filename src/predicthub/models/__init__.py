"""Canonical schema (Pydantic) - PredictionMarket, stats, health."""

from predicthub.models.errors import PredictionMarketError, UnknownPlatformError
from predicthub.models.market import (
    CategoryStat,
    MarketStats,
    MarketStatus,
    Platform,
    PlatformHealth,
    PredictionMarket,
    PricePoint,
    Resolution,
)

__all__ = [
    "PredictionMarket",
    "Platform",
    "MarketStatus",
    "Resolution",
    "MarketStats",
    "CategoryStat",
    "PricePoint",
    "PlatformHealth",
    "PredictionMarketError",
    "UnknownPlatformError",
]
