"""
Data acquisition layer
Cache-first market data with stale fallback over a rate-limited provider
"""

from .base import (
    DataProvider,
    PriceQuote,
    HistoricalPoint,
    BenchmarkPoint,
    CacheEntry,
    BaseAdapter,
    MarketDataAdapter
)

from .cache import CacheStore, SQLiteCacheStore, get_cache_store, set_cache_store
from .freshness import DataClass, EntryState, FreshnessPolicy, freshness_threshold
from .upstream import UpstreamClient, UpstreamError, UpstreamTimeout, InvalidPayload
from .pipeline import FetchPipeline
from .market import MarketDataService

__all__ = [
    # Records
    'DataProvider',
    'PriceQuote',
    'HistoricalPoint',
    'BenchmarkPoint',
    'CacheEntry',

    # Adapters
    'BaseAdapter',
    'MarketDataAdapter',
    'UpstreamClient',
    'UpstreamError',
    'UpstreamTimeout',
    'InvalidPayload',

    # Cache and policy
    'CacheStore',
    'SQLiteCacheStore',
    'get_cache_store',
    'set_cache_store',
    'DataClass',
    'EntryState',
    'FreshnessPolicy',
    'freshness_threshold',

    # Main interfaces
    'FetchPipeline',
    'MarketDataService'
]
