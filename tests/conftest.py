"""Shared test fixtures."""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cache_proxy.cache import CacheStore
from cache_proxy.main import create_app
from cache_proxy.pipeline import ProxyPipeline
from cache_proxy.settings import Settings
from cache_proxy.upstream import UpstreamClient

UPSTREAM_URL = "https://api.kraken.com"
TICKER_BODY = b'{"result":{"XXBTZUSD":{"c":["50000.0","0.01"]}}}'


class FakeClock:
    """Manually advanced replacement for `time.monotonic`."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """`httpx.MockTransport` handler that records every relayed request."""

    def __init__(self, body: bytes = TICKER_BODY, status_code: int = 200):
        self.body = body
        self.status_code = status_code
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return httpx.Response(
            self.status_code,
            content=self.body,
            headers={"Content-Type": "application/json", "X-Upstream": "kraken"},
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def cache(clock):
    return CacheStore(ttl_seconds=30.0, clock=clock)


@pytest.fixture
def upstream(fake_upstream):
    return UpstreamClient(UPSTREAM_URL, timeout=5.0, transport=httpx.MockTransport(fake_upstream))


@pytest.fixture
def pipeline(cache, upstream):
    return ProxyPipeline(cache, upstream)


@pytest_asyncio.fixture
async def client(cache, upstream):
    app = create_app(settings=Settings(), cache=cache, upstream=upstream)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
