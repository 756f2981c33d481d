"""
Freshness policy: how old a cached answer may be, per data class
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from ..config import CacheConfig
from .base import CacheEntry, utc_now

class DataClass(Enum):
    """Kinds of cached market data"""
    PRICE = "price"
    SUMMARY = "summary"
    SEARCH = "search"
    NEWS = "news"
    INTRADAY_CHART = "intraday_chart"
    CHART = "chart"
    HISTORICAL = "historical"

class EntryState(Enum):
    """Derived state of a cache entry at read time"""
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"

# Chart ranges that reflect live trading
INTRADAY_RANGES = frozenset({"1d", "5d"})

DEFAULT_THRESHOLDS: Dict[DataClass, timedelta] = {
    DataClass.PRICE: timedelta(minutes=15),
    DataClass.SUMMARY: timedelta(days=7),
    DataClass.SEARCH: timedelta(hours=2),
    DataClass.NEWS: timedelta(hours=2),
    DataClass.INTRADAY_CHART: timedelta(minutes=15),
    DataClass.CHART: timedelta(hours=24),
}

def chart_data_class(range_: str) -> DataClass:
    """Intraday ranges share the price threshold, longer ranges do not"""
    return DataClass.INTRADAY_CHART if range_.lower() in INTRADAY_RANGES else DataClass.CHART

@dataclass(frozen=True)
class FreshnessPolicy:
    """
    Maps a data class to its allowed staleness.

    Historical daily series have no threshold: their cache is judged by range
    completeness instead (see ``FetchPipeline.fetch_range``).
    """
    thresholds: Dict[DataClass, timedelta] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))

    @classmethod
    def from_config(cls, config: CacheConfig) -> 'FreshnessPolicy':
        return cls({
            DataClass.PRICE: timedelta(minutes=config.price_ttl_minutes),
            DataClass.SUMMARY: timedelta(minutes=config.summary_ttl_minutes),
            DataClass.SEARCH: timedelta(minutes=config.search_ttl_minutes),
            DataClass.NEWS: timedelta(minutes=config.search_ttl_minutes),
            DataClass.INTRADAY_CHART: timedelta(minutes=config.intraday_chart_ttl_minutes),
            DataClass.CHART: timedelta(minutes=config.chart_ttl_minutes),
        })

    def threshold(self, data_class: DataClass) -> timedelta:
        if data_class is DataClass.HISTORICAL:
            raise ValueError("historical series are checked for completeness, not age")
        return self.thresholds[data_class]

    def is_fresh(self, last_updated: datetime, data_class: DataClass, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) - last_updated < self.threshold(data_class)

    def state(self, entry: Optional[CacheEntry], data_class: DataClass, now: Optional[datetime] = None) -> EntryState:
        if entry is None:
            return EntryState.ABSENT
        if self.is_fresh(entry.last_updated, data_class, now):
            return EntryState.FRESH
        return EntryState.STALE

_default_policy = FreshnessPolicy()

def freshness_threshold(data_class: DataClass) -> timedelta:
    """Allowed staleness for a data class under the default policy"""
    return _default_policy.threshold(data_class)
