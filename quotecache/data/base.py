"""
Base classes for data adapters and the records they produce
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from enum import Enum

def utc_now() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)

class DataProvider(Enum):
    """Available upstream providers"""
    YAHOO = "yahoo"

@dataclass
class PriceQuote:
    """Normalized price quote handed to every caller"""
    ticker: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    last_updated: datetime = field(default_factory=utc_now)
    sector: Optional[str] = None
    industry: Optional[str] = None
    currency: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticker': self.ticker,
            'price': self.price,
            'change': self.change,
            'change_percent': self.change_percent,
            'last_updated': self.last_updated.isoformat(),
            'sector': self.sector,
            'industry': self.industry,
            'currency': self.currency
        }

@dataclass(frozen=True)
class HistoricalPoint:
    """Daily closing price"""
    date: date
    close: float

@dataclass(frozen=True)
class BenchmarkPoint:
    """Benchmark close normalized against the first point of the range"""
    date: date
    performance: float
    value: float

@dataclass
class CacheEntry:
    """One row of the generic cache, keyed by (symbol, cache_key)"""
    symbol: str
    cache_key: str
    payload: Any
    last_updated: datetime

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utc_now()) - self.last_updated

class BaseAdapter(ABC):
    """Base class for all upstream adapters"""

    def __init__(self, provider: DataProvider):
        self.provider = provider
        self.is_connected = False

    @abstractmethod
    async def connect(self):
        """Prepare the adapter for use"""
        pass

    @abstractmethod
    async def disconnect(self):
        """Release adapter resources"""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the adapter is healthy"""
        pass

class MarketDataAdapter(BaseAdapter):
    """
    Raw market-data provider calls.

    Implementations may block for an unbounded time and may raise anything;
    callers are expected to bound them with a timeout (see ``UpstreamClient``).
    """

    @abstractmethod
    async def get_quote(self, symbol: str) -> Optional[PriceQuote]:
        """Get current quote for symbol"""
        pass

    @abstractmethod
    async def get_quotes(self, symbols: Sequence[str]) -> Dict[str, PriceQuote]:
        """Get current quotes for several symbols in one round trip"""
        pass

    @abstractmethod
    async def get_summary(self, symbol: str, modules: Sequence[str]) -> Dict[str, Any]:
        """Get fundamentals/profile modules keyed by module name"""
        pass

    @abstractmethod
    async def get_chart(self, symbol: str, range_: str, interval: str) -> List[Dict[str, Any]]:
        """Get OHLCV points for a chart range"""
        pass

    @abstractmethod
    async def search(self, query: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Free-text instrument search"""
        pass

    @abstractmethod
    async def get_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        """Get daily closes for the inclusive range [start, end]"""
        pass
