"""Shared async HTTP client for platform adapters: errors, optional rate limit, TTL cache, retry."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import structlog

from predicthub.models import PredictionMarketError
from predicthub.sources.rate_limit import RequestWindow, backoff_delay

log = structlog.get_logger(__name__)

T = TypeVar("T")


class TTLCache:
    """In-memory response cache; entries expire after ttl_sec."""

    def __init__(self, ttl_sec: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        ts, value = entry
        if self._clock() - ts < self.ttl_sec:
            return value
        del self._store[key]
        return None

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        expired = [k for k, (ts, _) in self._store.items() if now - ts >= self.ttl_sec]
        for k in expired:
            del self._store[k]
        self._store[key] = (now, value)

    def __len__(self) -> int:
        return len(self._store)


def _cache_key(url: str, params: dict[str, Any] | None) -> str:
    if not params:
        return url
    return url + "?" + json.dumps(params, sort_keys=True, default=str)


class ApiClient:
    """Async JSON GET client bound to one platform's base URL.

    Every failure (transport error, non-2xx status, undecodable body) is raised
    as PredictionMarketError tagged with the platform name and status code.
    """

    def __init__(
        self,
        base_url: str,
        platform: str,
        *,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        rate_limit: bool = False,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        cache_ttl_sec: float = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.platform = platform
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )
        self.window = (
            RequestWindow(requests_per_minute, requests_per_hour) if rate_limit else None
        )
        self.cache = TTLCache(cache_ttl_sec) if cache_ttl_sec > 0 else None

    async def get(self, path: str = "", params: dict[str, Any] | None = None) -> Any:
        """GET path relative to base_url and return decoded JSON."""
        key = _cache_key(self.base_url + path, params)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug("http_cache_hit", platform=self.platform, path=path)
                return cached
        if self.window is not None:
            waited = await self.window.acquire()
            if waited:
                log.info("http_rate_limited", platform=self.platform, waited_sec=round(waited, 2))
        log.debug("http_request", platform=self.platform, path=path, params=params)
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            log.warning("http_error", platform=self.platform, path=path, error=str(e))
            raise PredictionMarketError(str(e) or type(e).__name__, self.platform) from e
        if resp.status_code >= 400:
            message = _error_message(resp)
            log.warning("http_error", platform=self.platform, path=path, status=resp.status_code)
            raise PredictionMarketError(message, self.platform, resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise PredictionMarketError("Invalid JSON response", self.platform, resp.status_code) from e
        if self.cache is not None:
            self.cache.set(key, data)
        return data

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code} {resp.reason_phrase}".strip()


def is_retryable(error: PredictionMarketError) -> bool:
    """Transport failures, 429 and 5xx are worth retrying; other 4xx are not."""
    status = error.status_code
    return status is None or status == 429 or status >= 500


async def with_retry(
    request: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call request() up to max_retries + 1 times with exponential backoff; re-raise the last error."""
    attempt = 0
    while True:
        try:
            return await request()
        except PredictionMarketError as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            delay = backoff_delay(attempt, base_delay)
            log.info("http_retry", platform=e.platform, attempt=attempt + 1, delay=delay)
            await sleep(delay)
            attempt += 1
