"""Aggregation service - concurrent fetch across platform adapters, merge, dedupe, rank."""

from __future__ import annotations

import asyncio
import math
import random
from collections import Counter
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable

import structlog

from predicthub.models import (
    CategoryStat,
    MarketStats,
    MarketStatus,
    PlatformHealth,
    PredictionMarket,
    UnknownPlatformError,
)
from predicthub.sources.base import MarketSource, matches_text, utcnow

log = structlog.get_logger(__name__)

ALL = "all"
MIN_QUERY_LENGTH = 2
SEARCH_FETCH_LIMIT = 200
LIMITLESS_MAX_LIMIT = 25
POLKAMARKETS_CATEGORY_FETCH = 200
CRYPTO_KEYWORDS = (
    "btc", "eth", "sol", "doge", "xrp", "link", "avax", "matic", "ada", "dot", "atom",
    "near", "apt", "sui", "arb", "op", "hbar", "kaito", "$",
)

SourceCall = Callable[[MarketSource], Awaitable[list[PredictionMarket]]]


def dedupe(markets: Iterable[PredictionMarket]) -> list[PredictionMarket]:
    """Drop repeated ids; first occurrence wins, order preserved."""
    seen: dict[str, PredictionMarket] = {}
    for m in markets:
        seen.setdefault(m.id, m)
    return list(seen.values())


def by_volume(markets: Iterable[PredictionMarket]) -> list[PredictionMarket]:
    return sorted(markets, key=lambda m: m.ranking_volume, reverse=True)


def by_volume_and_liquidity(markets: Iterable[PredictionMarket]) -> list[PredictionMarket]:
    return sorted(markets, key=lambda m: m.ranking_volume + m.ranking_liquidity, reverse=True)


def by_end_date_desc(markets: Iterable[PredictionMarket]) -> list[PredictionMarket]:
    return sorted(markets, key=lambda m: m.end_date, reverse=True)


def matches_category(market: PredictionMarket, category: str, crypto_keywords: bool = False) -> bool:
    """Case-insensitive category or tag match; optionally a crypto keyword match on the title."""
    wanted = category.lower()
    if market.category and market.category.lower() == wanted:
        return True
    if crypto_keywords and wanted == "crypto":
        title = (market.title or market.question or "").lower()
        return any(k in title for k in CRYPTO_KEYWORDS)
    return any(t.lower() == wanted for t in market.tags)


def rank_search_results(markets: Iterable[PredictionMarket], query: str) -> list[PredictionMarket]:
    """Exact title match first, then title prefix match, then volume."""
    q = query.lower().strip()

    def key(m: PredictionMarket) -> tuple[int, int, float]:
        title = (m.title or m.question or "").lower()
        return (int(title == q), int(title.startswith(q)), m.ranking_volume)

    return sorted(markets, key=key, reverse=True)


def merge_stats(results: list[MarketStats], top_n: int = 10) -> MarketStats:
    """Sum per-platform stats; liquidity is averaged across platforms, categories merged by name."""
    categories: dict[str, CategoryStat] = {}
    for stats in results:
        for c in stats.top_categories:
            merged = categories.setdefault(c.category, CategoryStat(category=c.category))
            merged.count += c.count
            merged.volume += c.volume
    return MarketStats(
        total_markets=sum(s.total_markets for s in results),
        total_volume_24h=sum(s.total_volume_24h for s in results),
        total_volume_7d=sum(s.total_volume_7d for s in results),
        active_markets=sum(s.active_markets for s in results),
        resolved_markets=sum(s.resolved_markets for s in results),
        average_liquidity=(
            sum(s.average_liquidity for s in results) / len(results) if results else 0.0
        ),
        top_categories=sorted(categories.values(), key=lambda c: c.volume, reverse=True)[:top_n],
    )


class AggregationService:
    """Fans each query out to every source and merges the normalized results.

    Each per-source call is isolated: an exception from one upstream is logged
    and that source contributes nothing, so the remaining sources still answer.
    """

    def __init__(
        self,
        sources: list[MarketSource],
        *,
        trending_min_volume: float = 1000,
        high_liquidity_min: float = 5000,
        rng: random.Random | None = None,
    ) -> None:
        self.sources = sources
        self.trending_min_volume = trending_min_volume
        self.high_liquidity_min = high_liquidity_min
        self.rng = rng or random.Random()

    @property
    def platforms(self) -> list[str]:
        return [s.platform for s in self.sources]

    def source(self, platform: str) -> MarketSource:
        for s in self.sources:
            if s.platform == platform:
                return s
        raise UnknownPlatformError(platform)

    def _select(self, platform: str = ALL) -> list[MarketSource]:
        if platform == ALL:
            return list(self.sources)
        return [self.source(platform)]

    async def _guarded(self, source: MarketSource, call: SourceCall, op: str) -> list[PredictionMarket]:
        try:
            return await call(source)
        except Exception as e:
            log.error("source_failed", platform=source.platform, op=op, error=str(e))
            return []

    async def fetch_all(
        self, call: SourceCall, op: str = "fetch", sources: list[MarketSource] | None = None
    ) -> list[list[PredictionMarket]]:
        """Run call(source) concurrently on each source; failures yield []."""
        sources = self.sources if sources is None else sources
        results = await asyncio.gather(*(self._guarded(s, call, op) for s in sources))
        log.debug(
            "sources_fetched",
            op=op,
            counts={s.platform: len(r) for s, r in zip(sources, results)},
        )
        return list(results)

    def _quota(self, limit: int) -> int:
        return max(1, math.ceil(limit / max(1, len(self.sources))))

    async def get_all_markets(self, limit: int = 500, timeframe: str = ALL) -> list[PredictionMarket]:
        """Balanced mix: top-by-volume of each platform, then global volume order."""
        quota = self._quota(limit)
        results = await self.fetch_all(
            lambda s: s.get_active_markets(quota, 0, timeframe), op="all_markets"
        )
        balanced: list[PredictionMarket] = []
        for markets in results:
            balanced.extend(by_volume(dedupe(markets))[:quota])
        final = by_volume(dedupe(balanced))[:limit]
        log.info("all_markets", count=len(final), platforms=summarize(final))
        return final

    async def get_markets_by_timeframe(self, timeframe: str, limit: int = 200) -> list[PredictionMarket]:
        quota = self._quota(limit)
        results = await self.fetch_all(
            lambda s: s.get_active_markets(quota, 0, timeframe), op="timeframe"
        )
        markets = dedupe(m for r in results for m in r)
        if timeframe == "future":
            ranked = by_end_date_desc(markets)
        elif timeframe == "trending":
            ranked = by_volume_and_liquidity(markets)
        else:
            ranked = by_volume(markets)
        return ranked[:limit]

    async def get_markets_by_category(self, category: str, limit: int = 50) -> list[PredictionMarket]:
        quota = self._quota(limit)
        results = await self.fetch_all(
            lambda s: s.get_markets_by_category(category, quota), op="category"
        )
        return sorted(
            dedupe(m for r in results for m in r), key=lambda m: m.total_volume, reverse=True
        )[:limit]

    async def search_markets(self, query: str, limit: int = 30) -> list[PredictionMarket]:
        quota = self._quota(limit)
        results = await self.fetch_all(lambda s: s.search_markets(query, quota), op="search_markets")
        return by_volume_and_liquidity(dedupe(m for r in results for m in r))[:limit]

    async def get_aggregated_stats(self) -> MarketStats:
        async def one(source: MarketSource) -> MarketStats:
            try:
                return await source.get_market_stats()
            except Exception as e:
                log.error("source_failed", platform=source.platform, op="stats", error=str(e))
                return MarketStats()

        results = await asyncio.gather(*(one(s) for s in self.sources))
        return merge_stats(list(results))

    async def get_trending_markets(self, limit: int = 20) -> list[PredictionMarket]:
        markets = await self.get_all_markets(200)
        hot = [m for m in markets if m.total_volume > self.trending_min_volume]
        return sorted(hot, key=lambda m: m.total_volume, reverse=True)[:limit]

    async def get_high_liquidity_markets(self, limit: int = 20) -> list[PredictionMarket]:
        markets = await self.get_all_markets(200)
        deep = [m for m in markets if m.liquidity > self.high_liquidity_min]
        return sorted(deep, key=lambda m: m.liquidity, reverse=True)[:limit]

    async def get_markets_ending_soon(self, hours: float = 24, limit: int = 20) -> list[PredictionMarket]:
        markets = await self.get_all_markets(200)
        now = utcnow()
        cutoff = now + timedelta(hours=hours)
        soon = [m for m in markets if m.status == MarketStatus.ACTIVE and now < m.end_date <= cutoff]
        return sorted(soon, key=lambda m: m.end_date)[:limit]

    async def get_market_by_id(self, market_id: str) -> PredictionMarket | None:
        """Route by `<platform>_` id prefix; otherwise ask each source in turn."""
        for s in self.sources:
            if market_id.startswith(f"{s.platform}_"):
                return await s.get_market_by_id(market_id)
        for s in self.sources:
            try:
                market = await s.get_market_by_id(market_id)
            except Exception as e:
                log.warning("market_lookup_failed", platform=s.platform, market_id=market_id, error=str(e))
                continue
            if market is not None:
                return market
        return None

    async def get_featured_markets(self, limit: int = 500) -> list[PredictionMarket]:
        markets = await self.get_all_markets(limit * 2)
        self.rng.shuffle(markets)
        return markets[:limit]

    async def get_platform_health(self) -> list[PlatformHealth]:
        async def check(source: MarketSource) -> PlatformHealth:
            try:
                await source.ping()
            except Exception as e:
                return PlatformHealth(
                    platform=source.platform, status="down", last_update=utcnow(), error=str(e)
                )
            return PlatformHealth(platform=source.platform, status="healthy", last_update=utcnow())

        return list(await asyncio.gather(*(check(s) for s in self.sources)))

    def _load_more_fetch_limit(self, platform: str, limit: int, category: str) -> int:
        if category != ALL:
            if platform == "polkamarkets":
                return POLKAMARKETS_CATEGORY_FETCH
            if platform == "limitlesslabs":
                return LIMITLESS_MAX_LIMIT
            return max(limit * 5, 100)
        if platform == "limitlesslabs":
            return min(limit, LIMITLESS_MAX_LIMIT)
        return limit

    async def load_more(
        self,
        limit: int = 50,
        offset: int = 0,
        platform: str = ALL,
        category: str = ALL,
    ) -> list[PredictionMarket]:
        """Paged listing for infinite scroll, optionally restricted to a platform and category."""
        sources = self._select(platform)
        fetch_limit = self._load_more_fetch_limit(platform, limit, category)
        results = await self.fetch_all(
            lambda s: s.get_active_markets(fetch_limit, offset), op="load_more", sources=sources
        )
        markets = by_end_date_desc(dedupe(m for r in results for m in r))
        if category != ALL:
            crypto = platform == "limitlesslabs"
            markets = [m for m in markets if matches_category(m, category, crypto_keywords=crypto)]
            log.info("load_more_filtered", category=category, matched=len(markets))
        if platform == ALL:
            self.rng.shuffle(markets)
        return markets[:limit]

    async def search(self, query: str, limit: int = 50) -> list[PredictionMarket]:
        """Cross-platform text search over each source's current listing."""
        q = (query or "").strip()
        if len(q) < MIN_QUERY_LENGTH:
            return []

        def call(s: MarketSource) -> Awaitable[list[PredictionMarket]]:
            fetch_limit = LIMITLESS_MAX_LIMIT if s.platform == "limitlesslabs" else SEARCH_FETCH_LIMIT
            return s.get_active_markets(fetch_limit, 0)

        results = await self.fetch_all(call, op="search")
        hits = [m for r in results for m in r if matches_text(m, q)]
        ranked = rank_search_results(dedupe(hits), q)[:limit]
        log.info("search", query=q, results=len(ranked))
        return ranked

    async def aclose(self) -> None:
        await asyncio.gather(*(s.aclose() for s in self.sources))


def summarize(markets: list[PredictionMarket]) -> dict[str, Any]:
    """Platform distribution of a result set, for logs and CLI output."""
    return dict(Counter(m.platform.value for m in markets))
