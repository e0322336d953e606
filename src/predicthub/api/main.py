"""FastAPI backend serving aggregated markets to the web client."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predicthub.aggregation import AggregationService
from predicthub.api.schemas import (
    ClientConfigResponse,
    ErrorResponse,
    HealthResponse,
    LimitlessAuthRequest,
    MarketJSON,
    SigningMessageResponse,
    UpstreamStatus,
)
from predicthub.config import Settings, get_settings
from predicthub.models import PredictionMarket, PredictionMarketError, UnknownPlatformError
from predicthub.sources import LimitlessAuth, PolkamarketsSource, build_sources
from predicthub.sources.polymarket import PRICE_HISTORY_RANGES, PolymarketSource

log = structlog.get_logger(__name__)

# Set by run_api(); read when uvicorn calls the create_app factory.
_config_profile: str | None = None
_config_dir: Path | None = None


def _error_json(error: str, message: str | None = None, status_code: int = 500) -> JSONResponse:
    """Return consistent error JSON: { error, message }."""
    content: dict[str, Any] = {"error": error}
    if message is not None:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def _markets_json(markets: list[PredictionMarket]) -> list[MarketJSON]:
    return [m.to_json() for m in markets]


def create_app(
    settings: Settings | None = None,
    service: AggregationService | None = None,
) -> FastAPI:
    """Build the API. A prebuilt service (e.g. with fake sources) may be injected."""
    settings = settings or get_settings(_config_profile, _config_dir)
    if service is None:
        service = AggregationService(
            build_sources(settings),
            trending_min_volume=settings.trending_min_volume,
            high_liquidity_min=settings.high_liquidity_min,
        )
    limitless_auth = LimitlessAuth()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("api_started", platforms=service.platforms)
        yield
        await service.aclose()

    app = FastAPI(title="PredictHub API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.service = service

    @app.exception_handler(UnknownPlatformError)
    async def unknown_platform(request: Request, exc: UnknownPlatformError) -> JSONResponse:
        return _error_json("Unknown platform", exc.message, status_code=400)

    @app.exception_handler(PredictionMarketError)
    async def upstream_error(request: Request, exc: PredictionMarketError) -> JSONResponse:
        log.error("request_failed", path=request.url.path, platform=exc.platform, error=exc.message)
        return _error_json("Upstream error", str(exc), status_code=500)

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        log.error("request_failed", path=request.url.path, error=str(exc))
        return _error_json("Internal server error", str(exc), status_code=500)

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Check every upstream; always 200 with per-platform status."""
        checks = await service.get_platform_health()
        return HealthResponse(
            timestamp=datetime.now(timezone.utc).isoformat(),
            apis={
                h.platform: UpstreamStatus(
                    status=h.status,
                    ok=h.status == "healthy",
                    error=h.error,
                    last_update=h.last_update,
                )
                for h in checks
            },
        )

    @app.get("/api/config", response_model=ClientConfigResponse)
    def client_config() -> ClientConfigResponse:
        return ClientConfigResponse(
            platforms=service.platforms,
            wallet_connect_project_id=settings.walletconnect_project_id or None,
        )

    @app.get("/api/load-more")
    async def load_more(
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        platform: str = Query("all"),
        category: str = Query("all"),
    ) -> list[MarketJSON]:
        """Next page of markets for infinite scroll, optionally per platform/category."""
        markets = await service.load_more(limit=limit, offset=offset, platform=platform, category=category)
        log.info("load_more", limit=limit, offset=offset, platform=platform, category=category, count=len(markets))
        return _markets_json(markets)

    @app.get("/api/search")
    async def search(
        q: str = Query(""),
        limit: int = Query(50, ge=1, le=500),
    ) -> list[MarketJSON]:
        return _markets_json(await service.search(q, limit=limit))

    @app.get("/api/markets")
    async def markets_by_timeframe(
        timeframe: str = Query("all", description="24h, 7d, 30d, future, trending or all"),
        limit: int = Query(200, ge=1, le=1000),
    ) -> list[MarketJSON]:
        if timeframe == "all":
            return _markets_json(await service.get_all_markets(limit))
        return _markets_json(await service.get_markets_by_timeframe(timeframe, limit))

    @app.get("/api/markets/stats")
    async def markets_stats() -> dict[str, Any]:
        stats = await service.get_aggregated_stats()
        return stats.model_dump(mode="json", by_alias=True)

    @app.get("/api/markets/trending")
    async def markets_trending(limit: int = Query(20, ge=1, le=200)) -> list[MarketJSON]:
        return _markets_json(await service.get_trending_markets(limit))

    @app.get("/api/markets/high-liquidity")
    async def markets_high_liquidity(limit: int = Query(20, ge=1, le=200)) -> list[MarketJSON]:
        return _markets_json(await service.get_high_liquidity_markets(limit))

    @app.get("/api/markets/ending-soon")
    async def markets_ending_soon(
        hours: float = Query(24, gt=0),
        limit: int = Query(20, ge=1, le=200),
    ) -> list[MarketJSON]:
        return _markets_json(await service.get_markets_ending_soon(hours, limit))

    @app.get("/api/markets/featured")
    async def markets_featured(limit: int = Query(50, ge=1, le=500)) -> list[MarketJSON]:
        return _markets_json(await service.get_featured_markets(limit))

    @app.get("/api/markets/category/{category}")
    async def markets_by_category(category: str, limit: int = Query(50, ge=1, le=500)) -> list[MarketJSON]:
        return _markets_json(await service.get_markets_by_category(category, limit))

    @app.get(
        "/api/markets/{market_id}",
        responses={404: {"description": "Market not found", "model": ErrorResponse}},
    )
    async def market_detail(market_id: str):
        market = await service.get_market_by_id(market_id)
        if market is None:
            return _error_json("Not found", f"Market not found: {market_id}", status_code=404)
        return market.to_json()

    @app.get("/api/polymarket")
    async def polymarket_proxy(
        endpoint: str = Query("markets"),
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        market_id: str | None = Query(None, alias="marketId"),
        time_range: str = Query("24h", alias="timeRange", description="1h, 6h, 24h, 7d or 30d"),
    ):
        source = service.source("polymarket")
        if endpoint == "markets":
            # Errors propagate so the client sees the upstream failure.
            return _markets_json(await source.get_active_markets(limit, offset))
        if endpoint == "market-details" and market_id:
            market = await source.get_market_by_id(market_id)
            if market is None:
                return _error_json("Not found", f"Market not found: {market_id}", status_code=404)
            return market.to_json()
        if endpoint == "events" and isinstance(source, PolymarketSource):
            return _markets_json(await source.get_events(limit, offset))
        if endpoint == "price-history" and market_id and isinstance(source, PolymarketSource):
            if time_range not in PRICE_HISTORY_RANGES:
                return _error_json(
                    "Invalid timeRange",
                    f"Expected one of {', '.join(PRICE_HISTORY_RANGES)}",
                    status_code=400,
                )
            points = await source.get_price_history(market_id, time_range)
            if points is None:
                return _error_json("Not found", f"Market not found: {market_id}", status_code=404)
            return [p.model_dump(mode="json", by_alias=True) for p in points]
        return _error_json(f"Endpoint {endpoint} not implemented", status_code=400)

    @app.get("/api/limitlesslabs")
    async def limitless_proxy(
        endpoint: str = Query("markets"),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if endpoint == "markets":
            source = service.source("limitlesslabs")
            return _markets_json(await source.get_active_markets(limit, offset))
        if endpoint == "auth-message":
            return SigningMessageResponse(message=limitless_auth.get_signing_message())
        return []

    @app.post("/api/limitlesslabs/auth")
    def limitless_authenticate(body: LimitlessAuthRequest):
        """Mock wallet-signature login; issues a session token held in memory."""
        try:
            return limitless_auth.authenticate(body.address, body.signature, body.message)
        except PredictionMarketError as e:
            return _error_json("Authentication failed", e.message, status_code=400)

    @app.delete("/api/limitlesslabs/auth")
    def limitless_logout() -> dict[str, bool]:
        limitless_auth.logout()
        return {"authenticated": False}

    @app.get("/api/polkamarkets-real")
    async def polkamarkets_proxy(
        endpoint: str | None = Query(None),
        limit: int = Query(10, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if not endpoint:
            return _error_json("Endpoint parameter is required", status_code=400)
        source = service.source("polkamarkets")
        if endpoint == "markets":
            return _markets_json(await source.get_active_markets(limit, offset))
        if endpoint == "stats":
            stats = await source.get_market_stats()
            return stats.model_dump(mode="json", by_alias=True)
        if endpoint == "categories" and isinstance(source, PolkamarketsSource):
            return source.categories()
        return _error_json(f"Endpoint {endpoint} not implemented", status_code=400)

    return app


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
    config_dir: Path | None = None,
) -> None:
    global _config_profile, _config_dir
    _config_profile = profile
    _config_dir = config_dir
    import uvicorn

    uvicorn.run("predicthub.api.main:create_app", host=host, port=port, reload=False, factory=True)
