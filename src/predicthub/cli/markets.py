"""Markets subcommand: list, search, stats, health."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import typer

from predicthub.aggregation import AggregationService
from predicthub.config import Settings
from predicthub.models import PredictionMarket
from predicthub.sources import build_sources

app = typer.Typer(help="Query markets across all enabled platforms")

T = TypeVar("T")


def _service(settings: Settings) -> AggregationService:
    return AggregationService(
        build_sources(settings),
        trending_min_volume=settings.trending_min_volume,
        high_liquidity_min=settings.high_liquidity_min,
    )


def _run(settings: Settings, call: Callable[[AggregationService], Awaitable[T]]) -> T:
    async def go() -> T:
        service = _service(settings)
        try:
            return await call(service)
        finally:
            await service.aclose()

    return asyncio.run(go())


def _echo_markets(markets: list[PredictionMarket]) -> None:
    for m in markets:
        title = (m.title or m.question or "")[:60]
        typer.echo(
            f"  {m.platform.value:<14} {m.yes_price:>5.2f}  {m.ranking_volume:>12,.0f}  {title}"
        )
    typer.echo(f"Total: {len(markets)} markets")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max markets to show"),
    offset: int = typer.Option(0, "--offset", help="Pagination offset"),
    platform: str = typer.Option("all", "--platform", help="polymarket, polkamarkets, limitlesslabs or all"),
    category: str = typer.Option("all", "--category", help="Category filter"),
) -> None:
    """List markets the way the load-more feed pages them."""
    settings: Settings = ctx.obj["settings"]
    markets = _run(
        settings,
        lambda s: s.load_more(
            limit=limit or settings.default_limit, offset=offset, platform=platform, category=category
        ),
    )
    _echo_markets(markets)


@app.command("search")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Text to match in title, description or category"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max results"),
) -> None:
    """Search every platform and rank exact and prefix title matches first."""
    settings = ctx.obj["settings"]
    markets = _run(settings, lambda s: s.search(query, limit=limit))
    if not markets:
        typer.echo("No markets found.")
        return
    _echo_markets(markets)


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Aggregated totals and top categories."""
    settings = ctx.obj["settings"]
    result = _run(settings, lambda s: s.get_aggregated_stats())
    typer.echo(f"Markets:        {result.total_markets}")
    typer.echo(f"Active:         {result.active_markets}")
    typer.echo(f"Resolved:       {result.resolved_markets}")
    typer.echo(f"Volume 24h:     {result.total_volume_24h:,.0f}")
    typer.echo(f"Volume 7d:      {result.total_volume_7d:,.0f}")
    typer.echo(f"Avg liquidity:  {result.average_liquidity:,.0f}")
    for c in result.top_categories:
        typer.echo(f"  {c.category:<20} {c.count:>5}  {c.volume:>14,.0f}")


@app.command("health")
def health(ctx: typer.Context) -> None:
    """Check each upstream. Exits 1 when any platform is down."""
    settings = ctx.obj["settings"]
    checks = _run(settings, lambda s: s.get_platform_health())
    for h in checks:
        line = f"  {h.platform:<14} {h.status}"
        if h.error:
            line += f"  ({h.error})"
        typer.echo(line)
    if any(h.status == "down" for h in checks):
        raise typer.Exit(code=1)
