"""
Typed fetchers: one per cached data class.

A fetcher knows how to ask the upstream client for its data class, how to
reject a meaningless answer, and how to turn a value into a cache payload
and back. The fetch pipelines are generic over these interfaces.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from .base import HistoricalPoint, PriceQuote
from .cache_keys import chart_key, price_key, search_key, summary_key
from .freshness import DataClass, chart_data_class
from .upstream import InvalidPayload, UpstreamClient

T = TypeVar("T")

class PayloadCodec(ABC, Generic[T]):
    """Validation and cache (de)serialization for one data class"""

    data_class: DataClass

    @abstractmethod
    def cache_key(self) -> str:
        pass

    @abstractmethod
    def validate(self, symbol: str, value: Optional[T]) -> T:
        """Return the value if meaningful, else raise InvalidPayload"""

    @abstractmethod
    def encode(self, value: T) -> Any:
        pass

    @abstractmethod
    def decode(self, symbol: str, payload: Any, last_updated: datetime) -> T:
        pass

class ItemFetcher(PayloadCodec[T]):
    """Fetches one symbol's value"""

    @abstractmethod
    async def fetch(self, symbol: str) -> Optional[T]:
        pass

class BatchFetcher(PayloadCodec[T]):
    """Fetches many symbols' values in a single upstream round trip"""

    @abstractmethod
    async def fetch_batch(self, symbols: Sequence[str]) -> Dict[str, T]:
        pass

class _QuoteCodec(PayloadCodec[PriceQuote]):
    data_class = DataClass.PRICE

    def cache_key(self) -> str:
        return price_key()

    def validate(self, symbol: str, value: Optional[PriceQuote]) -> PriceQuote:
        if value is None or value.price is None:
            raise InvalidPayload(f"quote {symbol}", "no market price in response")
        return value

    def encode(self, value: PriceQuote) -> Dict[str, Any]:
        return {
            'price': value.price,
            'change': value.change,
            'change_percent': value.change_percent,
            'currency': value.currency,
            'sector': value.sector,
            'industry': value.industry
        }

    def decode(self, symbol: str, payload: Dict[str, Any], last_updated: datetime) -> PriceQuote:
        return PriceQuote(
            ticker=symbol,
            price=payload['price'],
            change=payload.get('change') or 0.0,
            change_percent=payload.get('change_percent') or 0.0,
            last_updated=last_updated,
            sector=payload.get('sector'),
            industry=payload.get('industry'),
            currency=payload.get('currency')
        )

class QuoteFetcher(_QuoteCodec, ItemFetcher[PriceQuote]):
    def __init__(self, upstream: UpstreamClient):
        self.upstream = upstream

    async def fetch(self, symbol: str) -> Optional[PriceQuote]:
        return await self.upstream.quote(symbol)

class QuoteBatchFetcher(_QuoteCodec, BatchFetcher[PriceQuote]):
    def __init__(self, upstream: UpstreamClient):
        self.upstream = upstream

    async def fetch_batch(self, symbols: Sequence[str]) -> Dict[str, PriceQuote]:
        return await self.upstream.quotes(symbols)

class SummaryFetcher(ItemFetcher[Dict[str, Any]]):
    """Fundamentals / profile / statement modules for one symbol"""

    data_class = DataClass.SUMMARY

    def __init__(self, upstream: UpstreamClient, modules: Sequence[str]):
        self.upstream = upstream
        self.modules = sorted({m.strip() for m in modules if m and m.strip()})

    def cache_key(self) -> str:
        return summary_key(self.modules)

    async def fetch(self, symbol: str) -> Optional[Dict[str, Any]]:
        return await self.upstream.summary(symbol, self.modules)

    def validate(self, symbol: str, value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not value or not any(value.get(m) for m in self.modules):
            raise InvalidPayload(f"summary {symbol}", "no module returned data")
        return value

    def encode(self, value: Dict[str, Any]) -> Dict[str, Any]:
        return value

    def decode(self, symbol: str, payload: Dict[str, Any], last_updated: datetime) -> Dict[str, Any]:
        return dict(payload)

class ChartFetcher(ItemFetcher[Dict[str, Any]]):
    """OHLCV series for one range/interval"""

    def __init__(self, upstream: UpstreamClient, range_: str, interval: str):
        self.upstream = upstream
        self.range = range_
        self.interval = interval
        self.data_class = chart_data_class(range_)

    def cache_key(self) -> str:
        return chart_key(self.range, self.interval)

    async def fetch(self, symbol: str) -> Optional[Dict[str, Any]]:
        points = await self.upstream.chart(symbol, self.range, self.interval)
        return {'symbol': symbol, 'range': self.range, 'interval': self.interval, 'points': points}

    def validate(self, symbol: str, value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not value or not value.get('points'):
            raise InvalidPayload(f"chart {symbol}", "empty series")
        return value

    def encode(self, value: Dict[str, Any]) -> Dict[str, Any]:
        return value

    def decode(self, symbol: str, payload: Dict[str, Any], last_updated: datetime) -> Dict[str, Any]:
        return {**payload, 'last_updated': last_updated.isoformat()}

SEARCH_TYPES = frozenset({"EQUITY", "ETF"})
MAX_SEARCH_RESULTS = 8

class SearchFetcher(ItemFetcher[List[Dict[str, Any]]]):
    """Free-text search; stored under the search sentinel symbol"""

    data_class = DataClass.SEARCH

    def __init__(self, upstream: UpstreamClient, query: str, options: Optional[Dict[str, Any]] = None):
        self.upstream = upstream
        self.query = query.strip()
        self.options = dict(options or {})

    def cache_key(self) -> str:
        return search_key(self.query, self.options)

    async def fetch(self, symbol: str) -> Optional[List[Dict[str, Any]]]:
        raw = await self.upstream.search(self.query, self.options)
        if raw is None:
            return None

        results = []
        for quote in raw:
            if quote.get('quoteType') not in SEARCH_TYPES:
                continue
            results.append({
                'symbol': quote.get('symbol'),
                'name': quote.get('shortname') or quote.get('longname') or quote.get('symbol'),
                'exchange': quote.get('exchDisp') or quote.get('exchange'),
                'type': quote.get('quoteType')
            })
        return results[:MAX_SEARCH_RESULTS]

    def validate(self, symbol: str, value: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        # An empty match list is a real answer
        if value is None:
            raise InvalidPayload(f"search {self.query!r}", "no response")
        return value

    def encode(self, value: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {'results': value}

    def decode(self, symbol: str, payload: Dict[str, Any], last_updated: datetime) -> List[Dict[str, Any]]:
        return list(payload.get('results', []))

class HistoryFetcher:
    """Daily closes for a date range, stored per (symbol, date)"""

    data_class = DataClass.HISTORICAL

    def __init__(self, upstream: UpstreamClient):
        self.upstream = upstream

    async def fetch(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        return await self.upstream.history(symbol, start, end)

    def validate(self, symbol: str, points: Optional[List[HistoricalPoint]], start: date, end: date) -> List[HistoricalPoint]:
        by_date = {p.date: p for p in points or [] if start <= p.date <= end}
        if not by_date:
            raise InvalidPayload(f"history {symbol}", "no points in range")
        return [by_date[d] for d in sorted(by_date)]
