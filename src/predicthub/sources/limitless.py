"""LimitlessLabs REST adapter and (mock) wallet-signature auth session."""

from __future__ import annotations

import secrets
import time
from datetime import timedelta
from typing import Any

import httpx
import structlog

from predicthub.models import (
    MarketStats,
    MarketStatus,
    Platform,
    PredictionMarket,
    PredictionMarketError,
)
from predicthub.sources.base import (
    MarketSource,
    compute_stats,
    matches_text,
    parse_datetime,
    to_float,
    utcnow,
)
from predicthub.sources.http import ApiClient

log = structlog.get_logger(__name__)

LIMITLESS_API_BASE = "https://api.limitless.exchange"
MARKET_URL = "https://limitless.exchange/advanced/markets/{ref}"
MAX_PAGE_SIZE = 25

# Listing path and extra query params per timeframe
TIMEFRAME_ENDPOINTS: dict[str, tuple[str, dict[str, str]]] = {
    "24h": ("/markets/active", {"sort": "volume", "timeframe": "24h"}),
    "7d": ("/markets/active", {"sort": "volume", "timeframe": "7d"}),
    "30d": ("/markets/active", {"sort": "volume", "timeframe": "30d"}),
    "future": ("/markets/upcoming", {}),
    "trending": ("/markets/trending", {}),
}
DEFAULT_ENDPOINT: tuple[str, dict[str, str]] = ("/markets/active", {})


def _fraction(value: Any) -> float:
    """Limitless prices are percentages (e.g. 42.8); map to [0, 1]."""
    p = to_float(value)
    if p > 1:
        p /= 100
    return min(max(p, 0.0), 1.0)


def _thousands(raw: dict[str, Any], formatted_key: str, raw_key: str) -> float:
    """`*Formatted` values are in thousands (164.1 -> 164.1K); fall back to the raw field."""
    return to_float(raw.get(formatted_key)) * 1000 or to_float(raw.get(raw_key))


def extract_items(data: Any) -> list[dict[str, Any]]:
    """Response may be a bare list or wrapped as {items: [...]} / {data: [...]}."""
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("items") or data.get("data") or []
    else:
        items = []
    return [i for i in items if isinstance(i, dict)]


def parse_market(raw: dict[str, Any]) -> PredictionMarket:
    """Convert a Limitless market object to PredictionMarket."""
    now = utcnow()
    prices = raw.get("prices") if isinstance(raw.get("prices"), list) else []
    yes_price = _fraction(prices[0]) if len(prices) > 0 else 0.0
    no_price = _fraction(prices[1]) if len(prices) > 1 else 0.0

    volume = _thousands(raw, "volumeFormatted", "volume")
    # No liquidity upstream for most markets; 10% of volume is used as an estimate.
    liquidity = _thousands(raw, "liquidityFormatted", "liquidity") or volume * 0.1
    open_interest = _thousands(raw, "openInterestFormatted", "openInterest")

    ref = raw.get("id") if raw.get("id") is not None else raw.get("slug")
    if ref is None:
        ref = secrets.token_hex(5)
    categories = raw.get("categories")
    category = categories[0] if isinstance(categories, list) and categories else "Other"
    raw_status = str(raw.get("status") or "").upper()
    resolved = raw_status == "RESOLVED" or raw.get("expired") is True
    title = raw.get("title") or raw.get("question") or "Untitled"
    end_date = (
        parse_datetime(raw.get("expirationTimestamp"))
        or parse_datetime(raw.get("expirationDate"))
        or now + timedelta(days=7)
    )
    external_ref = raw.get("slug") or raw.get("id")
    return PredictionMarket(
        id=f"limitlesslabs_{ref}",
        platform=Platform.LIMITLESSLABS,
        title=title,
        question=title,
        description=raw.get("description") or "",
        category=category,
        tags=[str(t) for t in raw.get("tags") or []],
        start_date=parse_datetime(raw.get("creationTimestamp")) or parse_datetime(raw.get("createdAt")) or now,
        end_date=end_date,
        created_at=parse_datetime(raw.get("createdAt")) or now,
        updated_at=parse_datetime(raw.get("updatedAt")) or now,
        total_volume=volume,
        liquidity=liquidity,
        volume_num=volume,
        liquidity_num=liquidity,
        open_interest=open_interest,
        yes_price=yes_price,
        no_price=no_price,
        status=MarketStatus.RESOLVED if resolved else MarketStatus.ACTIVE,
        active=not resolved,
        resolved=resolved,
        outcomes=["Yes", "No"],
        outcome_prices=[str(yes_price), str(no_price)],
        slug=raw.get("slug"),
        external_url=MARKET_URL.format(ref=external_ref) if external_ref is not None else None,
        extra={"upstreamStatus": raw.get("status")} if raw.get("status") else {},
    )


def parse_markets(data: Any) -> list[PredictionMarket]:
    markets = []
    for row in extract_items(data):
        try:
            markets.append(parse_market(row))
        except (ValueError, TypeError) as e:
            log.warning("skip_market", platform="limitlesslabs", market_id=row.get("id"), error=str(e))
    return markets


class LimitlessSource(MarketSource):
    """api.limitless.exchange adapter. Upstream failures degrade to empty results."""

    platform = Platform.LIMITLESSLABS.value

    def __init__(
        self,
        base_url: str = LIMITLESS_API_BASE,
        *,
        page_size: int = MAX_PAGE_SIZE,
        timeout: float = 15.0,
        user_agent: str = "PredictHub/1.0",
        rate_limit: bool = False,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        cache_ttl_sec: float = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.page_size = min(page_size, MAX_PAGE_SIZE)
        self.client = ApiClient(
            base_url,
            self.platform,
            timeout=timeout,
            headers={"User-Agent": user_agent},
            rate_limit=rate_limit,
            requests_per_minute=requests_per_minute,
            requests_per_hour=requests_per_hour,
            cache_ttl_sec=cache_ttl_sec,
            transport=transport,
        )

    async def _get_markets(self, path: str, params: dict[str, Any]) -> list[PredictionMarket]:
        try:
            data = await self.client.get(path, params=params)
        except PredictionMarketError as e:
            log.error("limitless_fetch_failed", path=path, error=str(e), status=e.status_code)
            return []
        markets = parse_markets(data)
        log.debug("limitless_fetched", path=path, count=len(markets))
        return markets

    async def ping(self) -> None:
        # Listing calls swallow errors, so hit the endpoint directly.
        await self.client.get("/markets/active", params={"page": 1, "limit": 1})

    async def get_active_markets(
        self, limit: int = 25, offset: int = 0, timeframe: str = "all"
    ) -> list[PredictionMarket]:
        path, extra = TIMEFRAME_ENDPOINTS.get(timeframe, DEFAULT_ENDPOINT)
        page = offset // self.page_size + 1
        params = {"page": page, "limit": min(limit, self.page_size), **extra}
        return await self._get_markets(path, params)

    async def get_market_by_id(self, market_id: str) -> PredictionMarket | None:
        ref = self.strip_prefix(market_id)
        try:
            data = await self.client.get(f"/markets/{ref}")
        except PredictionMarketError as e:
            if e.status_code != 404:
                log.warning("market_lookup_failed", platform=self.platform, market_id=ref, error=str(e))
            return None
        if not isinstance(data, dict) or not data:
            return None
        return parse_market(data)

    async def search_markets(self, query: str, limit: int = 30) -> list[PredictionMarket]:
        markets = await self.get_active_markets(self.page_size)
        return [m for m in markets if matches_text(m, query)][:limit]

    async def get_markets_by_category(self, category: str, limit: int = 50) -> list[PredictionMarket]:
        markets = await self.get_active_markets(self.page_size)
        wanted = category.lower()
        return [m for m in markets if (m.category or "").lower() == wanted][:limit]

    async def get_market_stats(self) -> MarketStats:
        return compute_stats(await self.get_active_markets(self.page_size))

    async def aclose(self) -> None:
        await self.client.aclose()


class LimitlessAuth:
    """In-memory auth session for LimitlessLabs.

    Upstream auth is not wired; signing messages and tokens are generated
    locally so clients can exercise the login flow.
    """

    def __init__(self) -> None:
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.address: str | None = None

    def get_signing_message(self) -> str:
        return (
            "Welcome to LimitlessLabs! Please sign this message to authenticate.\n\n"
            f"Timestamp: {int(time.time() * 1000)}\nNonce: {secrets.token_hex(4)}"
        )

    def authenticate(self, address: str, signature: str, message: str) -> dict[str, Any]:
        if not address or not signature or not message:
            raise PredictionMarketError("address, signature and message are required", "limitlesslabs", 400)
        stamp = int(time.time() * 1000)
        self.access_token = f"mock_token_{stamp}_{secrets.token_hex(4)}"
        self.refresh_token = f"mock_refresh_{stamp}_{secrets.token_hex(4)}"
        self.address = address
        log.info("limitless_authenticated", address=address)
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "user": {"address": address, "id": f"user_{address[:8]}"},
        }

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def auth_headers(self) -> dict[str, str]:
        if self.access_token is None:
            raise PredictionMarketError("Not authenticated with LimitlessLabs", "limitlesslabs", 401)
        return {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}

    def logout(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.address = None
