"""
Market data service: the typed accessors application code calls
Every accessor returns a value, None or an empty collection; expected
upstream failures never surface as exceptions
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from ..config import Config, get_config
from ..utils import get_logger
from .base import BenchmarkPoint, HistoricalPoint, MarketDataAdapter, PriceQuote, utc_now
from .cache import CacheStore, get_cache_store, release_cache_store
from .cache_keys import SEARCH_SYMBOL, data_class_for_key, normalize_symbol
from .fetchers import (
    ChartFetcher,
    HistoryFetcher,
    QuoteBatchFetcher,
    QuoteFetcher,
    SearchFetcher,
    SummaryFetcher
)
from .freshness import FreshnessPolicy
from .pipeline import FetchPipeline
from .upstream import UpstreamClient

logger = get_logger(__name__)

BENCHMARK_SYMBOL = "^GSPC"

DEFAULT_SUMMARY_MODULES = ("assetProfile",)
DEFAULT_SEARCH_OPTIONS = {"quotes_count": 10, "news_count": 0}

# Chart range -> bar interval
CHART_INTERVALS = {
    "1d": "5m",
    "5d": "15m",
    "1mo": "1d",
    "3mo": "1d",
    "6mo": "1d",
    "1y": "1wk",
    "5y": "1mo",
    "max": "1mo",
}

CHART_RANGE_ALIASES = {
    "1D": "1d",
    "5D": "5d",
    "1M": "1mo",
    "3M": "3mo",
    "6M": "6mo",
    "1Y": "1y",
    "5Y": "5y",
}

# Quote symbol and fallback rate per currency, against USD
EXCHANGE_RATE_SYMBOLS = {
    "EUR": ("USDEUR=X", 0.92),
    "HUF": ("USDHUF=X", 350.0),
}

DateLike = Union[date, datetime]

def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value

def normalize_chart_range(range_: str) -> str:
    """Map UI aliases (1M, 1Y...) onto provider ranges; unknown -> 1mo"""
    range_ = (range_ or "").strip()
    range_ = CHART_RANGE_ALIASES.get(range_, range_.lower())
    return range_ if range_ in CHART_INTERVALS else "1mo"

class MarketDataService:
    """
    Cache-backed market data accessors.

    One instance per process: it owns the upstream client and shares the
    injected cache store across every request.
    """

    def __init__(
        self,
        adapter: Optional[MarketDataAdapter] = None,
        store: Optional[CacheStore] = None,
        config: Optional[Config] = None,
        policy: Optional[FreshnessPolicy] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config or get_config()
        if adapter is None:
            from .yahoo import YahooFinanceAdapter
            adapter = YahooFinanceAdapter(self.config.upstream.max_workers)

        self.adapter = adapter
        self.store = store or get_cache_store()
        self.policy = policy or FreshnessPolicy.from_config(self.config.cache)
        self.clock = clock
        self.upstream = UpstreamClient(adapter, self.config.upstream)
        self.pipeline = FetchPipeline(
            self.store,
            self.config.cache,
            clock=clock,
            timezone=self.config.system.timezone
        )

        self._quote_fetcher = QuoteFetcher(self.upstream)
        self._batch_fetcher = QuoteBatchFetcher(self.upstream)
        self._history_fetcher = HistoryFetcher(self.upstream)

    async def initialize(self):
        logger.info("Initializing market data service...")
        await self.adapter.connect()

    async def shutdown(self):
        """Flush pending cache writes, then release adapter and store"""
        logger.info("Shutting down market data service...")
        await self.pipeline.drain()
        try:
            await self.adapter.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting {self.adapter.provider.value}: {e}")
        await self.store.close()
        release_cache_store(self.store)

    async def get_current_price(self, ticker: str, force: bool = False) -> Optional[PriceQuote]:
        """Current price for one ticker"""
        if not ticker or not ticker.strip():
            return None

        fetcher = self._quote_fetcher
        return await self.pipeline.fetch_one(
            normalize_symbol(ticker),
            fetcher.cache_key(),
            self.policy.threshold(fetcher.data_class),
            fetcher,
            force_refresh=force
        )

    async def get_batch_prices(self, tickers: Iterable[str], force: bool = False) -> Dict[str, PriceQuote]:
        """
        Current prices for many tickers, keyed by normalized symbol.
        A missing key means the price is unknown right now.
        """
        symbols = sorted({normalize_symbol(t) for t in tickers or [] if t and t.strip()})
        fetcher = self._batch_fetcher
        return await self.pipeline.fetch_batch(
            symbols,
            fetcher.cache_key(),
            self.policy.threshold(fetcher.data_class),
            fetcher,
            force_refresh=force
        )

    async def get_cached_quote_summary(
        self,
        ticker: str,
        modules: Sequence[str] = DEFAULT_SUMMARY_MODULES,
        force: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Fundamentals/profile modules for one ticker"""
        if not ticker or not ticker.strip():
            return None

        fetcher = SummaryFetcher(self.upstream, modules)
        if not fetcher.modules:
            return None

        return await self.pipeline.fetch_one(
            normalize_symbol(ticker),
            fetcher.cache_key(),
            self.policy.threshold(fetcher.data_class),
            fetcher,
            force_refresh=force
        )

    async def get_cached_search(self, query: str, options: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Equity/ETF matches for a free-text query"""
        if not query or not query.strip():
            return []

        fetcher = SearchFetcher(self.upstream, query, options or DEFAULT_SEARCH_OPTIONS)
        results = await self.pipeline.fetch_one(
            SEARCH_SYMBOL,
            fetcher.cache_key(),
            self.policy.threshold(fetcher.data_class),
            fetcher
        )
        return results or []

    async def get_cached_chart(self, ticker: str, range_: str = "1mo", force: bool = False) -> Optional[Dict[str, Any]]:
        """OHLCV series for a chart range; intraday ranges refresh like prices"""
        if not ticker or not ticker.strip():
            return None

        range_ = normalize_chart_range(range_)
        fetcher = ChartFetcher(self.upstream, range_, CHART_INTERVALS[range_])
        return await self.pipeline.fetch_one(
            normalize_symbol(ticker),
            fetcher.cache_key(),
            self.policy.threshold(fetcher.data_class),
            fetcher,
            force_refresh=force
        )

    async def get_historical_prices(
        self,
        ticker: str,
        start: DateLike,
        end: Optional[DateLike] = None
    ) -> List[HistoricalPoint]:
        """Daily closes for [start, end] (end defaults to today)"""
        if not ticker or not ticker.strip():
            return []

        end_date = _as_date(end) if end is not None else self.pipeline.today()
        return await self.pipeline.fetch_range(
            normalize_symbol(ticker),
            _as_date(start),
            end_date,
            self._history_fetcher
        )

    async def get_historical_benchmark(self, start: DateLike, end: Optional[DateLike] = None) -> List[BenchmarkPoint]:
        """S&P 500 closes, with performance relative to the first close"""
        points = await self.get_historical_prices(BENCHMARK_SYMBOL, start, end)
        if not points:
            return []

        base = points[0].close
        return [
            BenchmarkPoint(
                date=p.date,
                performance=(p.close / base) - 1 if base else 0.0,
                value=p.close
            )
            for p in points
        ]

    async def get_exchange_rates(self) -> Dict[str, float]:
        """USD-based rates from FX quotes, defaulting when unavailable"""
        symbols = [symbol for symbol, _ in EXCHANGE_RATE_SYMBOLS.values()]
        quotes = await self.get_batch_prices(symbols)

        rates = {"USD": 1.0}
        for currency, (symbol, fallback) in EXCHANGE_RATE_SYMBOLS.items():
            quote = quotes.get(symbol)
            rates[currency] = quote.price if quote and quote.price else fallback
        return rates

    async def cache_stats(self) -> Dict[str, Any]:
        """Entry and staleness counts from the cache store"""
        now = self.clock()

        def cutoff_for(cache_key: str) -> datetime:
            return now - self.policy.threshold(data_class_for_key(cache_key))

        stats = await self.store.stats(cutoff_for)
        stats['pending_writes'] = self.pipeline.pending_writes
        return stats
