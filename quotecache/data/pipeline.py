"""
Cache-first fetch pipelines with stale fallback

Every read path follows the same shape: serve a fresh cache entry if there is
one, otherwise ask upstream, write the answer back in the background, and if
upstream fails fall back to whatever the cache holds, however old.
"""

import asyncio
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, TypeVar

import pytz

from ..config import CacheConfig, get_config
from ..utils import get_logger
from .base import CacheEntry, HistoricalPoint, utc_now
from .cache import CacheStore
from .cache_keys import normalize_symbol
from .fetchers import BatchFetcher, HistoryFetcher, ItemFetcher
from .upstream import UpstreamError

logger = get_logger(__name__)

T = TypeVar("T")

def last_weekday(day: date) -> date:
    """Roll a weekend day back to the preceding Friday"""
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day

class FetchPipeline:
    """
    Runs single-item, batch and historical fetches against one cache store.

    Cache writes are detached tasks: they never delay or fail the request
    that triggered them. ``drain()`` waits for the ones still in flight.
    """

    def __init__(
        self,
        store: CacheStore,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        timezone: Optional[str] = None
    ):
        self.store = store
        self.config = config or get_config().cache
        self.clock = clock
        self.timezone = pytz.timezone(timezone or get_config().system.timezone)
        self._pending_writes: Set[asyncio.Task] = set()

    # Background writes

    def _schedule_write(self, write: Awaitable, description: str):
        task = asyncio.get_running_loop().create_task(write)
        self._pending_writes.add(task)
        task.add_done_callback(lambda t: self._on_write_done(t, description))

    def _on_write_done(self, task: asyncio.Task, description: str):
        self._pending_writes.discard(task)
        if task.cancelled():
            logger.warning(f"Cache write cancelled: {description}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Cache write failed for {description}: {error}")

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def drain(self):
        """Wait for all in-flight cache writes"""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # Single item

    async def fetch_one(
        self,
        symbol: str,
        cache_key: str,
        threshold: timedelta,
        fetcher: ItemFetcher[T],
        force_refresh: bool = False
    ) -> Optional[T]:
        """
        Fetch one (symbol, cache_key) value.

        Args:
            symbol: Normalized symbol (or a sentinel for non-ticker caches)
            cache_key: Data-class discriminator, built via ``cache_keys``
            threshold: Maximum age of a cache entry that may be served
            fetcher: Upstream call, validation and payload codec
            force_refresh: Skip the fresh-cache check

        Returns:
            The fresh, cached or stale value; None when nothing is known
        """
        entry: Optional[CacheEntry] = None

        if not force_refresh:
            entry = await self.store.get(symbol, cache_key)
            if entry is not None and entry.age(self.clock()) < threshold:
                logger.debug(f"Cache hit for {symbol}/{cache_key}")
                return fetcher.decode(symbol, entry.payload, entry.last_updated)

        try:
            value = fetcher.validate(symbol, await fetcher.fetch(symbol))
        except UpstreamError as e:
            logger.warning(f"Upstream failed for {symbol}/{cache_key}: {e}")
            return await self._fallback_one(symbol, cache_key, fetcher, entry)

        # Stamped at completion, never at call start
        fresh = CacheEntry(symbol, cache_key, fetcher.encode(value), self.clock())
        self._schedule_write(self.store.upsert(fresh), f"{symbol}/{cache_key}")

        return fetcher.decode(symbol, fresh.payload, fresh.last_updated)

    async def _fallback_one(
        self,
        symbol: str,
        cache_key: str,
        fetcher: ItemFetcher[T],
        entry: Optional[CacheEntry]
    ) -> Optional[T]:
        if entry is None:
            entry = await self.store.get(symbol, cache_key)

        if entry is None:
            logger.warning(f"No cached value to fall back on for {symbol}/{cache_key}")
            return None

        logger.warning(
            f"Serving stale {symbol}/{cache_key} "
            f"(age {entry.age(self.clock()).total_seconds() / 60:.1f} min)"
        )
        return fetcher.decode(symbol, entry.payload, entry.last_updated)

    # Batch

    async def fetch_batch(
        self,
        symbols: Iterable[str],
        cache_key: str,
        threshold: timedelta,
        fetcher: BatchFetcher[T],
        force_refresh: bool = False
    ) -> Dict[str, T]:
        """
        Fetch one cache_key for many symbols with a single upstream call.

        Symbols nobody knows anything about are absent from the result.
        """
        wanted = sorted({normalize_symbol(s) for s in symbols if s and s.strip()})
        results: Dict[str, T] = {}
        if not wanted:
            return results

        if force_refresh:
            needs_fetch = wanted
        else:
            now = self.clock()
            fresh = await self.store.get_many(wanted, cache_key, updated_after=now - threshold)
            for symbol, entry in fresh.items():
                results[symbol] = fetcher.decode(symbol, entry.payload, entry.last_updated)
            needs_fetch = [s for s in wanted if s not in fresh]
            logger.debug(f"Batch {cache_key}: {len(fresh)} fresh, {len(needs_fetch)} to fetch")

        if not needs_fetch:
            return results

        fetched = await self._fetch_batch_upstream(needs_fetch, cache_key, fetcher)

        if fetched:
            completed_at = self.clock()
            entries = [
                CacheEntry(symbol, cache_key, fetcher.encode(value), completed_at)
                for symbol, value in fetched.items()
            ]
            self._schedule_write(self.store.upsert_many(entries), f"{len(entries)} x {cache_key}")
            for entry in entries:
                results[entry.symbol] = fetcher.decode(entry.symbol, entry.payload, entry.last_updated)

        missing = [s for s in needs_fetch if s not in fetched]
        if missing:
            stale = await self.store.get_many(missing, cache_key)
            for symbol, entry in stale.items():
                results[symbol] = fetcher.decode(symbol, entry.payload, entry.last_updated)
            if stale:
                logger.warning(f"Serving stale {cache_key} for {', '.join(sorted(stale))}")
            unknown = [s for s in missing if s not in stale]
            if unknown:
                logger.warning(f"No {cache_key} data for {', '.join(unknown)}")

        return results

    async def _fetch_batch_upstream(
        self,
        symbols: Sequence[str],
        cache_key: str,
        fetcher: BatchFetcher[T]
    ) -> Dict[str, T]:
        """One upstream call; only requested symbols with valid values survive"""
        try:
            raw = await fetcher.fetch_batch(symbols)
        except UpstreamError as e:
            logger.warning(f"Upstream batch failed for {len(symbols)} symbols/{cache_key}: {e}")
            return {}

        requested = set(symbols)
        valid: Dict[str, T] = {}
        for symbol, value in (raw or {}).items():
            symbol = (symbol or "").strip().upper()
            if symbol not in requested:
                continue
            try:
                valid[symbol] = fetcher.validate(symbol, value)
            except UpstreamError as e:
                logger.debug(f"Dropping batch result: {e}")
        return valid

    # Historical series

    def today(self) -> date:
        """Current date in the market timezone"""
        return self.clock().astimezone(self.timezone).date()

    def is_range_complete(self, points: Sequence[HistoricalPoint], start: date, end: date) -> bool:
        """
        Whether cached daily points cover [start, end].

        The tail must reach the last weekday on or before min(end, today),
        the head must start near ``start``, and no interior gap may exceed
        ``history_max_gap_days`` (longer than any weekend/holiday run).
        """
        if not points:
            return False

        max_gap = timedelta(days=self.config.history_max_gap_days)
        anchor = last_weekday(min(end, self.today()))

        if points[-1].date < anchor - timedelta(days=self.config.history_tail_tolerance_days):
            return False
        if points[0].date - start > max_gap:
            return False
        return all(b.date - a.date <= max_gap for a, b in zip(points, points[1:]))

    async def fetch_range(
        self,
        symbol: str,
        start: date,
        end: date,
        fetcher: HistoryFetcher
    ) -> List[HistoricalPoint]:
        """
        Daily closes for [start, end], oldest first.

        Returns an empty list when the cache is incomplete and upstream fails.
        """
        if start > end:
            raise ValueError(f"start {start} is after end {end}")

        cached = await self.store.get_history(symbol, start, end)
        if self.is_range_complete(cached, start, end):
            logger.debug(f"History cache complete for {symbol} {start}..{end}")
            return cached

        try:
            points = fetcher.validate(symbol, await fetcher.fetch(symbol, start, end), start, end)
        except UpstreamError as e:
            logger.warning(f"History unavailable for {symbol} {start}..{end}: {e}")
            return []

        self._schedule_write(
            self.store.upsert_history(symbol, points, self.clock()),
            f"{symbol} history ({len(points)} points)"
        )
        return points
