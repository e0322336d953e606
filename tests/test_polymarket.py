"""Gamma market normalization and Polymarket source tests."""

import httpx
import pytest

from predicthub.models import MarketStatus, Platform, PredictionMarketError, Resolution
from predicthub.sources.polymarket import (
    PolymarketSource,
    flatten_events,
    infer_category,
    parse_market,
    parse_markets,
    parse_price_history,
)


def gamma_market(**overrides):
    raw = {
        "id": "123",
        "question": "Will Bitcoin hit $200k in 2099?",
        "endDate": "2099-01-01T00:00:00Z",
        "createdAt": "2024-05-01T12:00:00Z",
        "active": True,
        "closed": False,
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.62", "0.38"]',
        "volumeNum": 5000,
        "liquidityNum": 1200,
        "slug": "btc-200k",
        "volume24hr": 300,
    }
    raw.update(overrides)
    return raw


def test_parse_active_market():
    m = parse_market(gamma_market())
    assert m.id == "polymarket_123"
    assert m.platform == Platform.POLYMARKET
    assert m.category == "Crypto"
    assert m.tags == ["Crypto"]
    assert m.yes_price == 0.62
    assert m.no_price == 0.38
    assert m.status == MarketStatus.ACTIVE
    assert m.resolution == Resolution.PENDING
    assert m.outcomes == ["Yes", "No"]
    assert m.total_volume == 5000
    assert m.condition_id == "123"
    assert m.external_url == "https://polymarket.com/market/btc-200k"
    assert m.extra == {"volume24hr": 300}
    assert m.end_date.tzinfo is not None


def test_parse_skips_market_without_end_date():
    raw = gamma_market()
    del raw["endDate"]
    assert parse_market(raw) is None


def test_parse_accepts_end_date_iso():
    raw = gamma_market(endDateIso="2099-06-30")
    del raw["endDate"]
    assert parse_market(raw).end_date.year == 2099


def test_no_price_defaults_to_complement():
    m = parse_market(gamma_market(outcomePrices='["0.7"]'))
    assert m.yes_price == 0.7
    assert m.no_price == pytest.approx(0.3)


def test_unparseable_prices_default_to_zero_yes():
    m = parse_market(gamma_market(outcomePrices="not json"))
    assert m.yes_price == 0.0
    assert m.no_price == 1.0


def test_closed_market_resolves_from_prices():
    yes = parse_market(gamma_market(closed=True, outcomePrices='["1", "0"]'))
    assert yes.status == MarketStatus.RESOLVED
    assert yes.resolution == Resolution.YES
    assert yes.resolved is True
    no = parse_market(gamma_market(closed=True, outcomePrices='["0.001", "0.999"]'))
    assert no.resolution == Resolution.NO
    unclear = parse_market(gamma_market(closed=True, outcomePrices='["0.5", "0.5"]'))
    assert unclear.resolution == Resolution.PENDING


def test_archived_and_expired_status():
    assert parse_market(gamma_market(archived=True)).status == MarketStatus.CANCELLED
    assert parse_market(gamma_market(endDate="2001-01-01T00:00:00Z")).status == MarketStatus.PENDING
    assert parse_market(gamma_market(active=False)).status == MarketStatus.PENDING


def test_infer_category():
    assert infer_category({"question": "Will the Lakers win the NBA title?"}) == "Sports"
    assert infer_category({"question": "Will Trump win the election?"}) == "Politics"
    assert infer_category({"question": "Will it snow in Paris?"}) == "Other"
    assert infer_category({"category": "Culture", "question": "Will Trump tweet?"}) == "Culture"


def test_parse_markets_skips_bad_rows():
    rows = {"data": [gamma_market(id="1"), "junk", {"question": "no id"}, gamma_market(id="2")]}
    assert [m.id for m in parse_markets(rows)] == ["polymarket_1", "polymarket_2"]
    assert parse_markets(None) == []


def test_camel_case_json():
    data = parse_market(gamma_market()).to_json()
    assert data["yesPrice"] == 0.62
    assert data["totalVolume"] == 5000
    assert data["endDate"].startswith("2099-01-01")
    assert "startDate" not in data


def _source(handler) -> PolymarketSource:
    return PolymarketSource("https://gamma.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_active_markets_newest_first():
    seen = {}

    def handler(request):
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json=[
                gamma_market(id="old", createdAt="2024-01-01T00:00:00Z"),
                gamma_market(id="new", createdAt="2024-06-01T00:00:00Z"),
            ],
        )

    source = _source(handler)
    markets = await source.get_active_markets(limit=10, offset=20)
    await source.aclose()
    assert [m.id for m in markets] == ["polymarket_new", "polymarket_old"]
    assert seen == {"limit": "10", "offset": "20", "closed": "false", "active": "true"}


@pytest.mark.asyncio
async def test_active_markets_upstream_failure_raises():
    source = _source(lambda request: httpx.Response(500))
    with pytest.raises(PredictionMarketError) as exc:
        await source.get_active_markets()
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_market_by_id_strips_prefix():
    def handler(request):
        if request.url.path == "/markets/123":
            return httpx.Response(200, json=gamma_market())
        return httpx.Response(404, json={"message": "not found"})

    source = _source(handler)
    market = await source.get_market_by_id("polymarket_123")
    assert market is not None and market.id == "polymarket_123"
    assert await source.get_market_by_id("999") is None


@pytest.mark.asyncio
async def test_search_and_category_filter():
    rows = [
        gamma_market(id="1"),
        gamma_market(id="2", question="Will the Lakers win the NBA title?"),
    ]
    source = _source(lambda request: httpx.Response(200, json=rows))
    assert [m.id for m in await source.search_markets("lakers")] == ["polymarket_2"]
    assert [m.id for m in await source.get_markets_by_category("crypto")] == ["polymarket_1"]
    stats = await source.get_market_stats()
    assert stats.total_markets == 2
    assert stats.total_volume_24h == 600


@pytest.mark.asyncio
async def test_stats_do_not_count_lifetime_volume_as_recent():
    rows = [
        gamma_market(id="1", volumeNum=5_000_000, volume24hr=0, volume1wk=0),
        gamma_market(id="2", volumeNum=900, volume24hr=None, volume1wk=250),
    ]
    source = _source(lambda request: httpx.Response(200, json=rows))
    stats = await source.get_market_stats()
    assert stats.total_volume_24h == 0
    assert stats.total_volume_7d == 250


def test_flatten_events_fills_from_parent_event():
    events = [
        {
            "id": "ev1",
            "title": "Fed decision in March?",
            "endDate": "2099-03-20T00:00:00Z",
            "image": "https://img.test/fed.png",
            "markets": [
                gamma_market(id="10", endDate=None, question=None),
                gamma_market(id="11", question="Fed cuts 50bps?"),
            ],
        },
        {"id": "ev2", "title": "No markets"},
        "junk",
    ]
    rows = flatten_events(events)
    assert [r["id"] for r in rows] == ["10", "11"]
    assert rows[0]["endDate"] == "2099-03-20T00:00:00Z"
    assert rows[0]["question"] == "Fed decision in March?"
    assert rows[0]["image"] == "https://img.test/fed.png"
    assert rows[1]["question"] == "Fed cuts 50bps?"
    assert rows[1]["eventId"] == "ev1"
    assert flatten_events({"data": []}) == []


def test_parse_price_history_sorts_and_skips_bad_rows():
    points = parse_price_history(
        [{"t": 1700000600, "p": 0.55}, {"t": 1700000000, "p": "0.5"}, {"p": 0.4}, "junk", {"t": 1700001200, "p": 1.2}]
    )
    assert [p.timestamp for p in points] == [1700000000000, 1700000600000, 1700001200000]
    assert [p.price for p in points] == [0.5, 0.55, 1.0]
    assert points[0].date.year == 2023
    assert parse_price_history(None) == []


@pytest.mark.asyncio
async def test_events_are_flattened_newest_first_open_only():
    seen = {}

    def handler(request):
        assert request.url.path == "/events"
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json=[{"id": "ev9", "title": "Election", "markets": [gamma_market(id="90"), gamma_market(id="91")]}],
        )

    source = _source(handler)
    markets = await source.get_events(limit=5)
    await source.aclose()
    assert [m.id for m in markets] == ["polymarket_90", "polymarket_91"]
    assert markets[0].extra["eventId"] == "ev9"
    assert markets[0].extra["eventTitle"] == "Election"
    assert seen == {"order": "id", "ascending": "false", "closed": "false", "limit": "5", "offset": "0"}


def _history_source(gamma_rows, history, seen):
    def handler(request):
        if request.url.host == "gamma.test":
            assert request.url.path == "/markets"
            seen["gamma"] = dict(request.url.params)
            return httpx.Response(200, json=gamma_rows)
        assert request.url.host == "clob.test"
        assert request.url.path == "/prices-history"
        seen["clob"] = dict(request.url.params)
        return httpx.Response(200, json={"history": history})

    return PolymarketSource(
        "https://gamma.test", clob_base_url="https://clob.test", transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_price_history_uses_first_clob_token():
    seen = {}
    source = _history_source(
        [gamma_market(clobTokenIds='["tok-yes", "tok-no"]')],
        [{"t": 1700003600, "p": 0.6}, {"t": 1700000000, "p": 0.5}],
        seen,
    )
    points = await source.get_price_history("polymarket_123", "7d")
    await source.aclose()
    assert seen["gamma"] == {"id": "123"}
    assert seen["clob"] == {"market": "tok-yes", "interval": "1w", "fidelity": "60"}
    assert [p.price for p in points] == [0.5, 0.6]


@pytest.mark.asyncio
async def test_price_history_buckets_per_range():
    seen = {}
    source = _history_source([gamma_market(clobTokenIds=["tok"])], [], seen)
    expected = {"1h": ("1h", "1"), "6h": ("6h", "5"), "24h": ("1d", "15"), "30d": ("1m", "360")}
    for time_range, (interval, fidelity) in expected.items():
        assert await source.get_price_history("123", time_range) == []
        assert (seen["clob"]["interval"], seen["clob"]["fidelity"]) == (interval, fidelity)
    with pytest.raises(ValueError):
        await source.get_price_history("123", "2y")


@pytest.mark.asyncio
async def test_price_history_without_tokens_or_market():
    seen = {}
    no_tokens = _history_source([gamma_market()], [{"t": 1, "p": 0.5}], seen)
    assert await no_tokens.get_price_history("123") == []
    assert "clob" not in seen
    missing = _history_source([], [], seen)
    assert await missing.get_price_history("404") is None
