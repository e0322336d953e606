"""Abstract platform adapter for pluggable sources (Polymarket, LimitlessLabs, ...)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from predicthub.models import CategoryStat, MarketStats, MarketStatus, PredictionMarket


def to_float(value: Any) -> float:
    """Lenient float: numbers and numeric strings, anything else -> 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings (with Z suffix) or epoch seconds/ms into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts > 1e11:  # ms epoch
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def matches_text(market: PredictionMarket, query: str) -> bool:
    """Case-insensitive substring match on title/question, description and category."""
    q = query.lower().strip()
    title = (market.title or market.question or "").lower()
    description = (market.description or "").lower()
    category = (market.category or "").lower()
    return q in title or q in description or q in category


def compute_stats(markets: Iterable[PredictionMarket], top_n: int = 10) -> MarketStats:
    """Stats over a market sample: counts, volumes, mean liquidity of active markets, top categories.

    24h/7d volume only counts markets that report volume24hr/volume1wk; others add 0.
    """
    markets = list(markets)
    active = [m for m in markets if m.status == MarketStatus.ACTIVE]
    resolved = [m for m in markets if m.status == MarketStatus.RESOLVED]
    by_category: dict[str, CategoryStat] = {}
    for m in active:
        name = m.category or "Uncategorized"
        stat = by_category.setdefault(name, CategoryStat(category=name))
        stat.count += 1
        stat.volume += m.ranking_volume
    top = sorted(by_category.values(), key=lambda c: c.volume, reverse=True)[:top_n]
    return MarketStats(
        total_markets=len(markets),
        total_volume_24h=sum(to_float(m.extra.get("volume24hr")) for m in active),
        total_volume_7d=sum(to_float(m.extra.get("volume1wk")) for m in active),
        active_markets=len(active),
        resolved_markets=len(resolved),
        average_liquidity=(
            sum(m.ranking_liquidity for m in active) / len(active) if active else 0.0
        ),
        top_categories=top,
    )


class MarketSource(ABC):
    """Abstract platform adapter: fetch upstream data and normalize into PredictionMarket."""

    platform: str = ""

    @abstractmethod
    async def get_active_markets(
        self, limit: int = 100, offset: int = 0, timeframe: str = "all"
    ) -> list[PredictionMarket]:
        """Return normalized active markets. Raises PredictionMarketError on upstream failure."""
        ...

    @abstractmethod
    async def get_market_by_id(self, market_id: str) -> PredictionMarket | None:
        ...

    @abstractmethod
    async def search_markets(self, query: str, limit: int = 30) -> list[PredictionMarket]:
        ...

    @abstractmethod
    async def get_markets_by_category(self, category: str, limit: int = 50) -> list[PredictionMarket]:
        ...

    @abstractmethod
    async def get_market_stats(self) -> MarketStats:
        ...

    async def ping(self) -> None:
        """Raise PredictionMarketError if the upstream is unreachable."""
        await self.get_active_markets(1)

    def strip_prefix(self, market_id: str) -> str:
        prefix = f"{self.platform}_"
        return market_id[len(prefix):] if market_id.startswith(prefix) else market_id

    async def aclose(self) -> None:
        """Release network resources. No-op for offline sources."""
        return None
