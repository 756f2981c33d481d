"""Shared fixtures: a scriptable upstream adapter, a controllable clock and a temp cache."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from quotecache.config import load_config
from quotecache.data.base import DataProvider, HistoricalPoint, MarketDataAdapter, PriceQuote
from quotecache.data.cache import SQLiteCacheStore


class FakeAdapter(MarketDataAdapter):
    """Adapter whose upstream calls are AsyncMocks tests can script and count."""

    def __init__(self):
        super().__init__(DataProvider.YAHOO)
        self.quote_mock = AsyncMock(return_value=None)
        self.quotes_mock = AsyncMock(return_value={})
        self.summary_mock = AsyncMock(return_value={})
        self.chart_mock = AsyncMock(return_value=[])
        self.search_mock = AsyncMock(return_value=[])
        self.history_mock = AsyncMock(return_value=[])

    async def connect(self):
        self.is_connected = True

    async def disconnect(self):
        self.is_connected = False

    async def health_check(self) -> bool:
        return self.is_connected

    async def get_quote(self, symbol):
        return await self.quote_mock(symbol)

    async def get_quotes(self, symbols):
        return await self.quotes_mock(symbols)

    async def get_summary(self, symbol, modules):
        return await self.summary_mock(symbol, modules)

    async def get_chart(self, symbol, range_, interval):
        return await self.chart_mock(symbol, range_, interval)

    async def search(self, query, options):
        return await self.search_mock(query, options)

    async def get_history(self, symbol, start, end):
        return await self.history_mock(symbol, start, end)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def slow(result, delay: float):
    """AsyncMock side effect that answers after ``delay`` seconds."""
    async def respond(*args, **kwargs):
        await asyncio.sleep(delay)
        return result
    return respond


def weekday_points(start: date, end: date, close: float = 100.0):
    """One point per weekday in [start, end]."""
    points = []
    day = start
    while day <= end:
        if day.weekday() < 5:
            points.append(HistoricalPoint(date=day, close=close))
        day += timedelta(days=1)
    return points


def make_quote(ticker: str, price: float, change: float = 0.0, change_percent: float = 0.0) -> PriceQuote:
    return PriceQuote(ticker=ticker, price=price, change=change, change_percent=change_percent)


@pytest.fixture
def config(tmp_path):
    cfg = load_config()
    cfg.system.data_dir = tmp_path
    cfg.cache.db_path = tmp_path / "market_cache.db"
    return cfg


@pytest.fixture
def store(config):
    cache_store = SQLiteCacheStore(config.cache.db_path)
    yield cache_store
    cache_store._executor.shutdown(wait=True)
    cache_store._conn.close()


@pytest.fixture
def clock():
    # Monday 2024-06-03, 14:00 UTC (10:00 in New York)
    return FakeClock(datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc))


@pytest.fixture
def adapter():
    return FakeAdapter()
