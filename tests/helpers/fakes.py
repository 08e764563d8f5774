import fnmatch

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from market_dashboard.core.config import Settings

T0 = 1_760_000_000.0  # 2025-10-09T08:53:20Z


class FakeClock:
    """Manually advanced epoch clock"""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRedis:
    """Minimal redis.asyncio stand-in; `down = True` makes every call fail like a dropped connection"""

    def __init__(self, down: bool = False):
        self.data = {}
        self.ttls = {}
        self.down = down
        self.closed = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def mget(self, keys):
        self._check()
        return [self.data.get(key) for key in keys]

    async def scan(self, cursor, match="*", count=100):
        self._check()
        return 0, [key for key in self.data if fnmatch.fnmatch(key, match)]

    async def info(self, section=None):
        self._check()
        return {"used_memory_human": "1.00M"}

    async def dbsize(self):
        self._check()
        return len(self.data)

    async def aclose(self):
        self.closed = True

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    def setex(self, key, ttl, value):
        self.commands.append((key, ttl, value))

    async def execute(self):
        results = []
        for key, ttl, value in self.commands:
            results.append(await self.redis.setex(key, ttl, value))
        return results


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        data_dir=str(tmp_path / "data"),
        redis_url=None,
        synthetic_seed=7,
        provider_max_retries=0,
        provider_rate_limits={},
        fred_api_key=None,
        polygon_api_key=None,
        alpha_vantage_api_key=None,
        coingecko_api_key=None,
        warm_rsi_cache=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def offline_transport() -> httpx.MockTransport:
    """Every provider answers 503"""
    return httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "unavailable"}))


def host_transport(handlers) -> httpx.MockTransport:
    """Dispatch by host; hosts without a handler answer 503"""

    def handle(request: httpx.Request) -> httpx.Response:
        handler = handlers.get(request.url.host)
        if handler is None:
            return httpx.Response(503, json={"error": "unavailable"})
        return handler(request)

    return httpx.MockTransport(handle)


def bybit_handler(request: httpx.Request) -> httpx.Response:
    """Bybit tickers and 1d open-interest history for BTCUSDT"""
    if request.url.path == "/v5/market/tickers":
        return httpx.Response(200, json={"retCode": 0, "result": {"list": [{
            "symbol": request.url.params["symbol"],
            "openInterestValue": "9000000000",
            "fundingRate": "0.0001",
            "nextFundingTime": "1760025600000",
            "markPrice": "116000.5",
        }]}})
    if request.url.path == "/v5/market/open-interest":
        # Newest first: +1% on the day, +10% on the week
        history = [101.0, 100.0, 99.0, 98.0, 97.0, 96.0, 95.0, 91.818]
        return httpx.Response(200, json={"retCode": 0, "result": {"list": [
            {"openInterest": str(value)} for value in history
        ]}})
    return httpx.Response(404)


def binance_klines_handler(request: httpx.Request) -> httpx.Response:
    """Daily klines with a gentle uptrend, newest last"""
    limit = int(request.url.params.get("limit", 30))
    start_ms = 1_755_000_000_000
    rows = []
    for i in range(limit):
        close = 100.0 + i * 0.5 + (3.0 if i % 3 == 0 else -1.0)
        rows.append([start_ms + i * 86_400_000, "100", "110", "90", str(close), "1000"])
    return httpx.Response(200, json=rows)
