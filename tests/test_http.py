"""ApiClient error mapping, response cache, retry and request window tests."""

import httpx
import pytest

from predicthub.models import PredictionMarketError
from predicthub.sources.http import ApiClient, TTLCache, is_retryable, with_retry
from predicthub.sources.rate_limit import RequestWindow, backoff_delay


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


def _client(handler, **kwargs) -> ApiClient:
    return ApiClient("https://upstream.test", "polymarket", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_get_returns_decoded_json():
    def handler(request):
        assert request.url.path == "/markets"
        assert request.url.params["limit"] == "5"
        return httpx.Response(200, json=[{"id": "1"}])

    async with _client(handler) as client:
        assert await client.get("/markets", params={"limit": 5}) == [{"id": "1"}]


@pytest.mark.asyncio
async def test_error_status_uses_body_message():
    def handler(request):
        return httpx.Response(422, json={"message": "bad limit"})

    async with _client(handler) as client:
        with pytest.raises(PredictionMarketError) as exc:
            await client.get("/markets")
    assert exc.value.status_code == 422
    assert exc.value.platform == "polymarket"
    assert exc.value.message == "bad limit"


@pytest.mark.asyncio
async def test_error_status_without_body_message():
    def handler(request):
        return httpx.Response(503, text="down")

    async with _client(handler) as client:
        with pytest.raises(PredictionMarketError) as exc:
            await client.get("/markets")
    assert exc.value.message == "HTTP 503 Service Unavailable"
    assert "(status 503)" in str(exc.value)


@pytest.mark.asyncio
async def test_transport_error_has_no_status():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    async with _client(handler) as client:
        with pytest.raises(PredictionMarketError) as exc:
            await client.get("/markets")
    assert exc.value.status_code is None
    assert "connection refused" in exc.value.message


@pytest.mark.asyncio
async def test_invalid_json_is_an_error():
    def handler(request):
        return httpx.Response(200, text="<html>")

    async with _client(handler) as client:
        with pytest.raises(PredictionMarketError, match="Invalid JSON"):
            await client.get("/markets")


@pytest.mark.asyncio
async def test_cache_serves_repeat_requests():
    hits = []

    def handler(request):
        hits.append(str(request.url))
        return httpx.Response(200, json={"n": len(hits)})

    async with _client(handler, cache_ttl_sec=60) as client:
        first = await client.get("/markets", params={"limit": 1})
        second = await client.get("/markets", params={"limit": 1})
        other = await client.get("/markets", params={"limit": 2})
    assert first == second == {"n": 1}
    assert other == {"n": 2}
    assert len(hits) == 2


def test_cache_disabled_by_default():
    client = ApiClient("https://upstream.test", "polymarket")
    assert client.cache is None
    assert client.window is None


def test_ttl_cache_expires():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", {"v": 1})
    clock.now = 9.9
    assert cache.get("k") == {"v": 1}
    clock.now = 10.0
    assert cache.get("k") is None


def test_ttl_cache_set_drops_expired_entries():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    for i in range(5):
        cache.set(f"page-{i}", i)
    assert len(cache) == 5
    clock.now = 15.0
    cache.set("fresh", "x")
    assert len(cache) == 1
    assert cache.get("fresh") == "x"
    assert cache.get("page-0") is None


def test_is_retryable():
    assert is_retryable(PredictionMarketError("x", "p"))
    assert is_retryable(PredictionMarketError("x", "p", 429))
    assert is_retryable(PredictionMarketError("x", "p", 502))
    assert not is_retryable(PredictionMarketError("x", "p", 404))


@pytest.mark.asyncio
async def test_with_retry_backs_off_then_succeeds():
    clock = FakeClock()
    delays = []
    attempts = []

    async def sleep(d):
        delays.append(d)
        await clock.sleep(d)

    async def request():
        attempts.append(1)
        if len(attempts) < 3:
            raise PredictionMarketError("busy", "polymarket", 503)
        return "ok"

    assert await with_retry(request, sleep=sleep) == "ok"
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_with_retry_gives_up_after_max_retries():
    calls = []

    async def sleep(d):
        pass

    async def request():
        calls.append(1)
        raise PredictionMarketError("busy", "polymarket", 500)

    with pytest.raises(PredictionMarketError):
        await with_retry(request, max_retries=2, sleep=sleep)
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_with_retry_does_not_retry_client_errors():
    calls = []

    async def sleep(d):
        raise AssertionError("should not sleep")

    async def request():
        calls.append(1)
        raise PredictionMarketError("missing", "polymarket", 404)

    with pytest.raises(PredictionMarketError):
        await with_retry(request, sleep=sleep)
    assert len(calls) == 1


def test_backoff_delay():
    assert backoff_delay(0) == 1.0
    assert backoff_delay(3, base_delay=0.5) == 4.0


@pytest.mark.asyncio
async def test_request_window_minute_limit():
    clock = FakeClock()
    window = RequestWindow(2, 1000, clock=clock, sleep=clock.sleep)
    assert await window.acquire() == 0
    assert await window.acquire() == 0
    assert window.next_delay() == 60.0
    assert await window.acquire() == 60.0
    assert clock.now == 60.0


@pytest.mark.asyncio
async def test_request_window_hour_limit():
    clock = FakeClock()
    window = RequestWindow(100, 2, clock=clock, sleep=clock.sleep)
    await window.acquire()
    clock.now = 30.0
    await window.acquire()
    waited = await window.acquire()
    assert waited == 3570.0
    assert clock.now == 3600.0
