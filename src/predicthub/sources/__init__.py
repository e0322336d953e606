"""Platform adapters: fetch one upstream and normalize into PredictionMarket."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predicthub.models import UnknownPlatformError
from predicthub.sources.base import MarketSource
from predicthub.sources.limitless import LimitlessAuth, LimitlessSource
from predicthub.sources.polkamarkets import PolkamarketsSource
from predicthub.sources.polymarket import PolymarketSource

if TYPE_CHECKING:
    from predicthub.config import Settings


def build_source(platform: str, settings: Settings) -> MarketSource:
    """Construct the adapter for `platform` from settings."""
    http_opts = {
        "timeout": settings.timeout_sec,
        "user_agent": settings.user_agent,
        "rate_limit": settings.rate_limit_enabled,
        "requests_per_minute": settings.requests_per_minute,
        "requests_per_hour": settings.requests_per_hour,
        "cache_ttl_sec": settings.cache_ttl_sec,
    }
    if platform == "polymarket":
        return PolymarketSource(settings.gamma_api_base, clob_base_url=settings.clob_api_base, **http_opts)
    if platform == "limitlesslabs":
        return LimitlessSource(
            settings.limitless_api_base, page_size=settings.limitless_page_size, **http_opts
        )
    if platform == "polkamarkets":
        return PolkamarketsSource()
    raise UnknownPlatformError(platform)


def build_sources(settings: Settings) -> list[MarketSource]:
    return [build_source(p, settings) for p in settings.enabled_platforms]


__all__ = [
    "MarketSource",
    "PolymarketSource",
    "LimitlessSource",
    "LimitlessAuth",
    "PolkamarketsSource",
    "build_source",
    "build_sources",
]
