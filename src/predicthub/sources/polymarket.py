"""Polymarket Gamma API adapter - market listing and normalization."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from predicthub.models import (
    MarketStats,
    MarketStatus,
    Platform,
    PredictionMarket,
    PredictionMarketError,
    PricePoint,
    Resolution,
)
from predicthub.sources.base import (
    MarketSource,
    compute_stats,
    matches_text,
    parse_datetime,
    to_float,
    utcnow,
)
from predicthub.sources.http import ApiClient, with_retry

log = structlog.get_logger(__name__)

GAMMA_API_BASE = "https://gamma-api.polymarket.com"
CLOB_API_BASE = "https://clob.polymarket.com"
MARKET_URL = "https://polymarket.com/market/{slug}"

# Checked in order; first match wins. Substring match on the lowercased question.
CATEGORY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "Politics",
        re.compile(
            r"trump|biden|election|president|congress|senate|white house|political|politics"
            r"|vote|democrat|republican|governor|mayor|immigration|deport"
        ),
    ),
    (
        "Crypto",
        re.compile(
            r"bitcoin|btc|ethereum|eth|crypto|blockchain|defi|nft|solana|ada|cardano|polygon"
            r"|matic|usdt|tether|usdc|binance"
        ),
    ),
    (
        "Economics",
        re.compile(
            r"recession|gdp|inflation|federal reserve|fed|interest rate|stock|market cap|economy"
            r"|nasdaq|s&p|dow jones|treasury|bond|gold|commodities"
        ),
    ),
    (
        "Technology",
        re.compile(
            r"ai |artificial intelligence|chatgpt|openai|google|meta|microsoft|apple|nvidia|amd"
            r"|tesla|spacex|tech|software|hardware|chip|semiconductor|gemini|deepseek"
        ),
    ),
    (
        "Sports",
        re.compile(
            r"nba|nfl|soccer|football|baseball|basketball|hockey|olympics|championship|match"
            r"|game|sport|player|team|super bowl"
        ),
    ),
    (
        "Entertainment",
        re.compile(
            r"movie|film|oscar|grammy|emmy|music|album|song|celebrity|actor|actress|director"
            r"|box office|streaming|netflix|disney|avatar|wicked|marvel|dc"
        ),
    ),
    (
        "Science",
        re.compile(
            r"pandemic|covid|virus|vaccine|disease|health|medical|science|research|climate"
            r"|weather|hurricane|earthquake"
        ),
    ),
    (
        "Business",
        re.compile(
            r"ceo|company|corporation|business|startup|ipo|merger|acquisition|earnings|revenue"
            r"|profit|amazon|walmart|microstrategy"
        ),
    ),
    ("Space", re.compile(r"spacex|rocket|launch|satellite|mars|moon|nasa|space|starship")),
]

# Gamma fields kept verbatim under PredictionMarket.extra
_EXTRA_FIELDS = (
    "volume24hr",
    "volume1wk",
    "volume1mo",
    "volume1yr",
    "bestBid",
    "bestAsk",
    "spread",
    "lastTradePrice",
    "oneHourPriceChange",
    "oneDayPriceChange",
    "oneWeekPriceChange",
    "oneMonthPriceChange",
    "oneYearPriceChange",
    "competitive",
    "marketType",
    "archived",
    "restricted",
    "featured",
    "feesEnabled",
    "clobTokenIds",
    "eventId",
    "eventTitle",
)

# Chart time range -> (CLOB interval, fidelity in minutes)
PRICE_HISTORY_RANGES: dict[str, tuple[str, int]] = {
    "1h": ("1h", 1),
    "6h": ("6h", 5),
    "24h": ("1d", 15),
    "7d": ("1w", 60),
    "30d": ("1m", 360),
}


def infer_category(raw: dict[str, Any]) -> str:
    """Explicit category if present, else keyword match on the question, else Other."""
    if raw.get("category"):
        return str(raw["category"])
    question = (raw.get("question") or raw.get("title") or "").lower()
    for name, pattern in CATEGORY_PATTERNS:
        if pattern.search(question):
            return name
    return "Other"


def _parse_json_list(value: Any) -> list[Any]:
    """Gamma encodes outcomes/prices as JSON strings; accept real lists too."""
    if isinstance(value, list):
        return value
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return []
    return parsed if isinstance(parsed, list) else []


def _clamp(p: float) -> float:
    return min(max(p, 0.0), 1.0)


def _status(raw: dict[str, Any], end_date: Any) -> MarketStatus:
    if raw.get("closed"):
        return MarketStatus.RESOLVED
    if raw.get("archived"):
        return MarketStatus.CANCELLED
    if raw.get("active") and end_date > utcnow():
        return MarketStatus.ACTIVE
    return MarketStatus.PENDING


def _resolution(status: MarketStatus, yes_price: float, no_price: float) -> Resolution:
    if status != MarketStatus.RESOLVED:
        return Resolution.PENDING
    if yes_price >= 0.99:
        return Resolution.YES
    if no_price >= 0.99:
        return Resolution.NO
    return Resolution.PENDING


def parse_market(raw: dict[str, Any]) -> PredictionMarket | None:
    """Convert a Gamma API market object to PredictionMarket. None if the record is unusable."""
    gamma_id = raw.get("id")
    end_date = parse_datetime(raw.get("endDate") or raw.get("endDateIso") or raw.get("end_date_iso"))
    if gamma_id is None or end_date is None:
        log.warning("skip_market", platform="polymarket", market_id=gamma_id, reason="missing id or endDate")
        return None
    now = utcnow()
    prices = [to_float(p) for p in _parse_json_list(raw.get("outcomePrices"))]
    yes_price = _clamp(prices[0]) if prices else 0.0
    no_price = _clamp(prices[1]) if len(prices) > 1 and prices[1] else _clamp(1 - yes_price)
    status = _status(raw, end_date)
    category = infer_category(raw)
    volume = to_float(raw.get("volumeNum")) or to_float(raw.get("volume"))
    liquidity = to_float(raw.get("liquidityNum")) or to_float(raw.get("liquidity"))
    slug = raw.get("slug")
    question = raw.get("question") or raw.get("title") or "Market Question"
    return PredictionMarket(
        id=f"polymarket_{gamma_id}",
        platform=Platform.POLYMARKET,
        title=question,
        question=question,
        description=raw.get("description"),
        category=category,
        tags=[category],
        start_date=parse_datetime(raw.get("startDate")),
        end_date=end_date,
        created_at=parse_datetime(raw.get("createdAt")) or now,
        updated_at=parse_datetime(raw.get("updatedAt")) or now,
        total_volume=max(volume, 0.0),
        liquidity=max(liquidity, 0.0),
        volume_num=volume,
        liquidity_num=liquidity,
        yes_price=yes_price,
        no_price=no_price,
        status=status,
        resolution=_resolution(status, yes_price, no_price),
        active=bool(raw.get("active", False)),
        resolved=bool(raw.get("closed", False)),
        outcomes=[str(o) for o in _parse_json_list(raw.get("outcomes"))],
        outcome_prices=[str(p) for p in _parse_json_list(raw.get("outcomePrices"))],
        slug=slug,
        condition_id=raw.get("conditionId") or str(gamma_id),
        image_url=raw.get("image"),
        external_url=MARKET_URL.format(slug=slug) if slug else None,
        extra={k: raw[k] for k in _EXTRA_FIELDS if raw.get(k) is not None},
    )


def parse_markets(rows: Any) -> list[PredictionMarket]:
    """Normalize a Gamma response body; malformed rows are logged and skipped."""
    if isinstance(rows, dict):
        rows = rows.get("data", [])
    if not isinstance(rows, list):
        return []
    markets = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            m = parse_market(row)
        except (ValueError, TypeError) as e:
            log.warning("skip_market", platform="polymarket", market_id=row.get("id"), error=str(e))
            continue
        if m is not None:
            markets.append(m)
    return markets


def sort_newest_first(markets: list[PredictionMarket]) -> list[PredictionMarket]:
    return sorted(markets, key=lambda m: m.created_at, reverse=True)


def flatten_events(events: Any) -> list[dict[str, Any]]:
    """Lift markets out of Gamma /events rows, filling gaps from the parent event."""
    if not isinstance(events, list):
        return []
    rows = []
    for event in events:
        if not isinstance(event, dict):
            continue
        for market in event.get("markets") or []:
            if not isinstance(market, dict):
                continue
            rows.append(
                {
                    **market,
                    "endDate": market.get("endDate") or event.get("endDate"),
                    "question": market.get("question") or event.get("title"),
                    "image": market.get("image") or event.get("image"),
                    "eventId": event.get("id"),
                    "eventTitle": event.get("title"),
                }
            )
    return rows


def parse_price_history(history: Any) -> list[PricePoint]:
    """CLOB rows are {t: epoch seconds, p: price}; returned oldest first."""
    if not isinstance(history, list):
        return []
    points = []
    for row in history:
        if not isinstance(row, dict) or row.get("t") is None or row.get("p") is None:
            continue
        ts = int(to_float(row["t"]))
        points.append(
            PricePoint(
                timestamp=ts * 1000,
                date=datetime.fromtimestamp(ts, tz=timezone.utc),
                price=_clamp(to_float(row["p"])),
            )
        )
    points.sort(key=lambda p: p.timestamp)
    return points


class PolymarketSource(MarketSource):
    """Gamma API /markets and /events adapter; price history comes from the CLOB API."""

    platform = Platform.POLYMARKET.value

    def __init__(
        self,
        base_url: str = GAMMA_API_BASE,
        *,
        clob_base_url: str = CLOB_API_BASE,
        timeout: float = 15.0,
        user_agent: str = "PredictHub/1.0",
        rate_limit: bool = False,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        cache_ttl_sec: float = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        client_opts: dict[str, Any] = {
            "timeout": timeout,
            "headers": {"User-Agent": user_agent},
            "rate_limit": rate_limit,
            "requests_per_minute": requests_per_minute,
            "requests_per_hour": requests_per_hour,
            "cache_ttl_sec": cache_ttl_sec,
            "transport": transport,
        }
        self.client = ApiClient(base_url, self.platform, **client_opts)
        self.clob = ApiClient(clob_base_url, self.platform, **client_opts)

    async def _fetch(self, limit: int, offset: int = 0, active_only: bool = True) -> list[PredictionMarket]:
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if active_only:
            params["closed"] = "false"
            params["active"] = "true"
        data = await self.client.get("/markets", params=params)
        markets = parse_markets(data)
        log.debug("polymarket_fetched", raw=len(data) if isinstance(data, list) else None, parsed=len(markets))
        return markets

    async def get_active_markets(
        self, limit: int = 100, offset: int = 0, timeframe: str = "all"
    ) -> list[PredictionMarket]:
        # Gamma has no timeframe filter; ranking by timeframe happens in aggregation.
        return sort_newest_first(await self._fetch(limit, offset))

    async def get_market_by_id(self, market_id: str) -> PredictionMarket | None:
        gamma_id = self.strip_prefix(market_id)
        try:
            data = await with_retry(lambda: self.client.get(f"/markets/{gamma_id}"))
        except PredictionMarketError as e:
            if e.status_code != 404:
                log.warning("market_lookup_failed", platform=self.platform, market_id=gamma_id, error=str(e))
            return None
        if isinstance(data, list):
            data = data[0] if data else None
        return parse_market(data) if isinstance(data, dict) else None

    async def search_markets(self, query: str, limit: int = 30) -> list[PredictionMarket]:
        markets = await self._fetch(200)
        return [m for m in markets if matches_text(m, query)][:limit]

    async def get_markets_by_category(self, category: str, limit: int = 50) -> list[PredictionMarket]:
        markets = await self._fetch(max(limit * 5, 100))
        wanted = category.lower()
        return [m for m in markets if (m.category or "").lower() == wanted][:limit]

    async def get_market_stats(self) -> MarketStats:
        return compute_stats(await self._fetch(1000, active_only=False))

    async def get_events(self, limit: int = 100, offset: int = 0) -> list[PredictionMarket]:
        """Markets of the newest open events, flattened in event order."""
        params = {"order": "id", "ascending": "false", "closed": "false", "limit": limit, "offset": offset}
        data = await self.client.get("/events", params=params)
        markets = parse_markets(flatten_events(data))
        log.debug("polymarket_events_fetched", events=len(data) if isinstance(data, list) else None, markets=len(markets))
        return markets

    async def get_price_history(self, market_id: str, time_range: str = "24h") -> list[PricePoint] | None:
        """YES-token price series for a chart range. None if the market is unknown.

        The market's first CLOB token is the YES outcome; markets without CLOB
        tokens have no history and yield [].
        """
        if time_range not in PRICE_HISTORY_RANGES:
            raise ValueError(f"Unsupported time range: {time_range}")
        gamma_id = self.strip_prefix(market_id)
        data = await self.client.get("/markets", params={"id": gamma_id})
        rows = data if isinstance(data, list) else [data]
        if not rows or not isinstance(rows[0], dict):
            return None
        token_ids = _parse_json_list(rows[0].get("clobTokenIds"))
        if not token_ids:
            log.info("price_history_unavailable", market_id=gamma_id, reason="no clob tokens")
            return []
        interval, fidelity = PRICE_HISTORY_RANGES[time_range]
        body = await self.clob.get(
            "/prices-history",
            params={"market": token_ids[0], "interval": interval, "fidelity": fidelity},
        )
        points = parse_price_history(body.get("history") if isinstance(body, dict) else None)
        log.debug("price_history_fetched", market_id=gamma_id, time_range=time_range, points=len(points))
        return points

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.clob.aclose()
