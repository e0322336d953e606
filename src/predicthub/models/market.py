"""PredictionMarket, MarketStats, PlatformHealth - canonical entities."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Platform(str, Enum):
    POLYMARKET = "polymarket"
    POLKAMARKETS = "polkamarkets"
    LIMITLESSLABS = "limitlesslabs"
    ZEITGEIST = "zeitgeist"
    OMEN = "omen"
    OTHER = "other"


class MarketStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    PENDING = "pending"


class Resolution(str, Enum):
    YES = "yes"
    NO = "no"
    PENDING = "pending"


class _CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; dumps camelCase with by_alias=True."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PredictionMarket(_CamelModel):
    """Canonical market - platform-agnostic."""

    id: str  # platform-prefixed, e.g. polymarket_123
    platform: Platform
    title: str
    question: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    start_date: datetime | None = None
    end_date: datetime
    created_at: datetime
    updated_at: datetime

    total_volume: float = Field(0.0, ge=0)
    liquidity: float = Field(0.0, ge=0)
    volume_num: float | None = None
    liquidity_num: float | None = None
    open_interest: float | None = None
    participant_count: int | None = None

    yes_price: float = Field(..., ge=0, le=1, description="Probability/price in [0, 1]")
    no_price: float = Field(..., ge=0, le=1)

    status: MarketStatus
    resolution: Resolution | None = None
    active: bool | None = None
    resolved: bool | None = None

    outcomes: list[str] = Field(default_factory=list)
    outcome_prices: list[str] = Field(default_factory=list)

    slug: str | None = None
    condition_id: str | None = None
    image_url: str | None = None
    external_url: str | None = None

    # Platform-specific extension fields (e.g. Polymarket volume24hr, bestBid)
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def ranking_volume(self) -> float:
        return self.volume_num or self.total_volume or 0.0

    @property
    def ranking_liquidity(self) -> float:
        return self.liquidity_num or self.liquidity or 0.0

    def to_json(self) -> dict[str, Any]:
        """JSON-ready camelCase dict, as served to web clients."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CategoryStat(_CamelModel):
    category: str
    count: int = 0
    volume: float = 0.0


class MarketStats(_CamelModel):
    """Per-platform or aggregated market statistics."""

    total_markets: int = 0
    # Explicit aliases: the generator would give totalVolume24H
    total_volume_24h: float = Field(0.0, alias="totalVolume24h")
    total_volume_7d: float = Field(0.0, alias="totalVolume7d")
    active_markets: int = 0
    resolved_markets: int = 0
    average_liquidity: float = 0.0
    top_categories: list[CategoryStat] = Field(default_factory=list)


class PlatformHealth(_CamelModel):
    platform: str
    status: str = Field(..., pattern="^(healthy|degraded|down)$")
    last_update: datetime
    error: str | None = None


class PricePoint(_CamelModel):
    """One point of a market's YES price series."""

    timestamp: int  # epoch ms
    date: datetime
    price: float = Field(..., ge=0, le=1)
