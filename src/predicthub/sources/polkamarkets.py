"""Polkamarkets adapter - fixture-backed until an on-chain reader exists."""

from __future__ import annotations

from typing import Any

import structlog

from predicthub.models import MarketStats, MarketStatus, Platform, PredictionMarket
from predicthub.sources.base import (
    MarketSource,
    compute_stats,
    matches_text,
    parse_datetime,
    to_float,
    utcnow,
)

log = structlog.get_logger(__name__)

_END_2025 = "2025-12-31T23:59:59Z"

# (id, question, description, category, yes, no, volume, liquidity)
_FIXTURE_ROWS: list[tuple[str, str, str, str, str, str, float, float]] = [
    (
        "polkamarkets-1",
        "Will Polkadot reach $100 by end of 2025?",
        "This market predicts whether Polkadot (DOT) will reach $100 USD by December 31, 2025.",
        "Crypto", "0.42", "0.58", 185000, 75000,
    ),
    (
        "polkamarkets-2",
        "Will Polkamarkets reach 1M users by Q4 2025?",
        "This market predicts whether Polkamarkets will reach 1 million active users by Q4 2025.",
        "Technology", "0.65", "0.35", 125000, 48000,
    ),
    (
        "polkamarkets-3",
        "Will Moonriver TVL exceed $500M by year end?",
        "This market predicts whether Moonriver Total Value Locked will exceed $500M by end of 2025.",
        "DeFi", "0.38", "0.62", 145000, 62000,
    ),
    (
        "polkamarkets-4",
        "Will Kusama parachain auctions reach 100 slots?",
        "This market predicts whether Kusama parachain auctions will reach 100 slots by end of 2025.",
        "Crypto", "0.28", "0.72", 95000, 42000,
    ),
    (
        "polkamarkets-5",
        "Will Polkadot governance proposals exceed 200 in 2025?",
        "This market predicts whether Polkadot governance will have more than 200 proposals in 2025.",
        "Governance", "0.72", "0.28", 110000, 55000,
    ),
    (
        "polkamarkets-6",
        "Will Ethereum 2.0 staking reach 50M ETH by end of 2025?",
        "This market predicts whether Ethereum 2.0 staking will reach 50 million ETH by end of 2025.",
        "Crypto", "0.55", "0.45", 165000, 68000,
    ),
    (
        "polkamarkets-7",
        "Will Polkadot ecosystem TVL exceed $10B in 2025?",
        "This market predicts whether total value locked across the Polkadot ecosystem will exceed $10B in 2025.",
        "DeFi", "0.33", "0.67", 135000, 58000,
    ),
]

FIXTURE_MARKETS: list[dict[str, Any]] = [
    {
        "id": mid,
        "question": question,
        "description": description,
        "category": category,
        "status": "active",
        "outcomes": ["Yes", "No"],
        "outcomePrices": [yes, no],
        "volume": volume,
        "liquidity": liquidity,
        "endDate": _END_2025,
        "active": True,
        "closed": False,
    }
    for mid, question, description, category, yes, no, volume, liquidity in _FIXTURE_ROWS
]


def parse_market(raw: dict[str, Any]) -> PredictionMarket:
    """Convert a Polkamarkets record to PredictionMarket."""
    now = utcnow()
    prices = raw.get("outcomePrices") or []
    yes_price = to_float(prices[0]) if len(prices) > 0 else 0.5
    no_price = to_float(prices[1]) if len(prices) > 1 else 0.5
    if raw.get("closed"):
        status = MarketStatus.RESOLVED
    elif raw.get("active"):
        status = MarketStatus.ACTIVE
    else:
        status = MarketStatus.PENDING
    volume = to_float(raw.get("volume"))
    liquidity = to_float(raw.get("liquidity"))
    return PredictionMarket(
        id=str(raw["id"]),
        platform=Platform.POLKAMARKETS,
        title=raw["question"],
        question=raw["question"],
        description=raw.get("description") or "",
        category=raw.get("category") or "General",
        tags=list(raw.get("tags") or []),
        end_date=parse_datetime(raw.get("endDate")) or now,
        created_at=parse_datetime(raw.get("createdAt")) or now,
        updated_at=parse_datetime(raw.get("updatedAt")) or now,
        total_volume=volume,
        liquidity=liquidity,
        volume_num=volume,
        liquidity_num=liquidity,
        yes_price=yes_price,
        no_price=no_price,
        status=status,
        active=raw.get("active") is not False,
        resolved=bool(raw.get("closed")),
        outcomes=list(raw.get("outcomes") or []),
        outcome_prices=[str(p) for p in prices],
        image_url=raw.get("imageUrl"),
    )


class PolkamarketsSource(MarketSource):
    """Serves the fixture set; listing is end-date descending then paginated."""

    platform = Platform.POLKAMARKETS.value

    def __init__(self, fixtures: list[dict[str, Any]] | None = None) -> None:
        self.fixtures = fixtures if fixtures is not None else FIXTURE_MARKETS

    def _all(self) -> list[PredictionMarket]:
        markets = [parse_market(raw) for raw in self.fixtures]
        markets.sort(key=lambda m: m.end_date, reverse=True)
        return markets

    async def get_active_markets(
        self, limit: int = 10, offset: int = 0, timeframe: str = "all"
    ) -> list[PredictionMarket]:
        markets = self._all()[offset : offset + limit]
        log.debug("polkamarkets_served", count=len(markets), offset=offset)
        return markets

    async def get_market_by_id(self, market_id: str) -> PredictionMarket | None:
        for m in self._all():
            if m.id == market_id or m.id == self.strip_prefix(market_id):
                return m
        return None

    async def search_markets(self, query: str, limit: int = 50) -> list[PredictionMarket]:
        return [m for m in self._all() if matches_text(m, query)][:limit]

    async def get_markets_by_category(self, category: str, limit: int = 50) -> list[PredictionMarket]:
        wanted = category.lower()
        return [m for m in self._all() if (m.category or "").lower() == wanted][:limit]

    async def get_market_stats(self) -> MarketStats:
        return compute_stats(self._all())

    def categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for m in self._all():
            if m.category:
                seen.setdefault(m.category, None)
        return list(seen)
