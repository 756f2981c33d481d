"""
Cache store for market data
Durable (symbol, cache_key) table plus a (symbol, date) historical table
"""

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..config import get_config
from ..utils import get_logger
from .base import CacheEntry, HistoricalPoint
from .cache_keys import PRICE_KEY, data_class_for_key

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# Scalar columns the hot price class is flattened into
PRICE_COLUMNS = ("price", "change", "change_percent", "currency", "sector", "industry")

# Batch quotes carry no classification; a missing value keeps the stored one
STICKY_COLUMNS = ("currency", "sector", "industry")

SCHEMA = """
CREATE TABLE IF NOT EXISTS market_cache (
    symbol TEXT NOT NULL,
    cache_key TEXT NOT NULL,
    price REAL,
    change REAL,
    change_percent REAL,
    currency TEXT,
    sector TEXT,
    industry TEXT,
    payload TEXT,
    last_updated TEXT NOT NULL,
    PRIMARY KEY (symbol, cache_key)
);

CREATE TABLE IF NOT EXISTS historical_prices (
    symbol TEXT NOT NULL,
    date TEXT NOT NULL,
    close REAL NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (symbol, date)
);
"""

def format_timestamp(moment: datetime) -> str:
    """UTC, fixed-width so stored timestamps compare lexicographically"""
    if moment.tzinfo is None:
        raise ValueError("cache timestamps must be timezone-aware")
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)

def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)

def _set_clause(column: str) -> str:
    if column in STICKY_COLUMNS:
        return f"{column} = COALESCE(excluded.{column}, market_cache.{column})"
    return f"{column} = excluded.{column}"

class CacheStore(ABC):
    """
    Contract of the persistent cache.

    Every write is an upsert keyed by natural identity, so concurrent writers
    resolve to last-writer-wins without locks or read-modify-write.
    """

    @abstractmethod
    async def get(self, symbol: str, cache_key: str) -> Optional[CacheEntry]:
        """Point lookup"""

    @abstractmethod
    async def get_many(
        self,
        symbols: Iterable[str],
        cache_key: str,
        updated_after: Optional[datetime] = None
    ) -> Dict[str, CacheEntry]:
        """Bulk lookup, optionally restricted to entries newer than ``updated_after``"""

    @abstractmethod
    async def upsert(self, entry: CacheEntry):
        """Insert or overwrite one entry"""

    @abstractmethod
    async def upsert_many(self, entries: Sequence[CacheEntry]):
        """Insert or overwrite several entries"""

    @abstractmethod
    async def get_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        """Daily points with ``start <= date <= end``, oldest first"""

    @abstractmethod
    async def upsert_history(self, symbol: str, points: Sequence[HistoricalPoint], updated_at: datetime):
        """Insert or overwrite daily points keyed by (symbol, date)"""

    @abstractmethod
    async def stats(self, cutoff_for: Callable[[str], datetime]) -> Dict[str, Any]:
        """Entry counts; ``cutoff_for(cache_key)`` gives the stale boundary"""

    async def close(self):
        pass

class SQLiteCacheStore(CacheStore):
    """
    SQLite implementation of the cache store.

    One connection per store, driven from a single worker thread so the
    event loop never blocks on disk I/O.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or get_config().cache.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="quotecache-db")
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"Initialized cache store at {self.db_path}")

    async def _run(self, func: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    # Generic cache

    def _row_to_entry(self, row: sqlite3.Row) -> CacheEntry:
        if row["cache_key"] == PRICE_KEY:
            payload = {column: row[column] for column in PRICE_COLUMNS}
        else:
            payload = json.loads(row["payload"]) if row["payload"] is not None else None

        return CacheEntry(
            symbol=row["symbol"],
            cache_key=row["cache_key"],
            payload=payload,
            last_updated=parse_timestamp(row["last_updated"])
        )

    def _entry_to_params(self, entry: CacheEntry) -> tuple:
        if entry.cache_key == PRICE_KEY:
            scalars = tuple(entry.payload.get(column) for column in PRICE_COLUMNS)
            payload = None
        else:
            scalars = (None,) * len(PRICE_COLUMNS)
            payload = json.dumps(entry.payload, default=str)

        return (entry.symbol, entry.cache_key, *scalars, payload, format_timestamp(entry.last_updated))

    def _get(self, symbol: str, cache_key: str) -> Optional[CacheEntry]:
        row = self._conn.execute(
            "SELECT * FROM market_cache WHERE symbol = ? AND cache_key = ?",
            (symbol, cache_key)
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def _get_many(self, symbols: List[str], cache_key: str, updated_after: Optional[datetime]) -> Dict[str, CacheEntry]:
        if not symbols:
            return {}

        placeholders = ",".join("?" for _ in symbols)
        sql = f"SELECT * FROM market_cache WHERE symbol IN ({placeholders}) AND cache_key = ?"
        params: list = [*symbols, cache_key]
        if updated_after is not None:
            sql += " AND last_updated > ?"
            params.append(format_timestamp(updated_after))

        rows = self._conn.execute(sql, params).fetchall()
        return {row["symbol"]: self._row_to_entry(row) for row in rows}

    def _upsert_many(self, entries: Sequence[CacheEntry]):
        # An older write finishing late never replaces a newer row
        sql = f"""
            INSERT INTO market_cache (symbol, cache_key, {", ".join(PRICE_COLUMNS)}, payload, last_updated)
            VALUES (?, ?, {", ".join("?" for _ in PRICE_COLUMNS)}, ?, ?)
            ON CONFLICT(symbol, cache_key) DO UPDATE SET
                {", ".join(_set_clause(c) for c in PRICE_COLUMNS)},
                payload = excluded.payload,
                last_updated = excluded.last_updated
            WHERE excluded.last_updated >= market_cache.last_updated
        """
        with self._conn:
            self._conn.executemany(sql, [self._entry_to_params(e) for e in entries])

    async def get(self, symbol: str, cache_key: str) -> Optional[CacheEntry]:
        return await self._run(self._get, symbol, cache_key)

    async def get_many(
        self,
        symbols: Iterable[str],
        cache_key: str,
        updated_after: Optional[datetime] = None
    ) -> Dict[str, CacheEntry]:
        return await self._run(self._get_many, sorted(set(symbols)), cache_key, updated_after)

    async def upsert(self, entry: CacheEntry):
        await self._run(self._upsert_many, [entry])
        logger.debug(f"Cached {entry.symbol}/{entry.cache_key}")

    async def upsert_many(self, entries: Sequence[CacheEntry]):
        if not entries:
            return
        await self._run(self._upsert_many, list(entries))
        logger.debug(f"Cached {len(entries)} entries under {entries[0].cache_key}")

    # Historical series

    def _get_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        rows = self._conn.execute(
            """SELECT date, close FROM historical_prices
               WHERE symbol = ? AND date >= ? AND date <= ?
               ORDER BY date ASC""",
            (symbol, start.isoformat(), end.isoformat())
        ).fetchall()
        return [HistoricalPoint(date=date.fromisoformat(row["date"]), close=row["close"]) for row in rows]

    def _upsert_history(self, symbol: str, points: Sequence[HistoricalPoint], updated_at: datetime):
        stamp = format_timestamp(updated_at)
        with self._conn:
            self._conn.executemany(
                """INSERT INTO historical_prices (symbol, date, close, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(symbol, date) DO UPDATE SET
                       close = excluded.close,
                       updated_at = excluded.updated_at""",
                [(symbol, p.date.isoformat(), p.close, stamp) for p in points]
            )

    async def get_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        return await self._run(self._get_history, symbol, start, end)

    async def upsert_history(self, symbol: str, points: Sequence[HistoricalPoint], updated_at: datetime):
        if not points:
            return
        await self._run(self._upsert_history, symbol, list(points), updated_at)
        logger.debug(f"Cached {len(points)} historical points for {symbol}")

    # Inspection

    def _stats(self, cutoff_for: Callable[[str], datetime]) -> Dict[str, Any]:
        by_class: Dict[str, Dict[str, int]] = {}
        total = 0

        rows = self._conn.execute(
            "SELECT cache_key, COUNT(*) AS n FROM market_cache GROUP BY cache_key"
        ).fetchall()
        for row in rows:
            cache_key, count = row["cache_key"], row["n"]
            stale = self._conn.execute(
                "SELECT COUNT(*) FROM market_cache WHERE cache_key = ? AND last_updated <= ?",
                (cache_key, format_timestamp(cutoff_for(cache_key)))
            ).fetchone()[0]

            bucket = by_class.setdefault(data_class_for_key(cache_key).value, {'entries': 0, 'stale': 0})
            bucket['entries'] += count
            bucket['stale'] += stale
            total += count

        history = self._conn.execute(
            "SELECT COUNT(*), COUNT(DISTINCT symbol) FROM historical_prices"
        ).fetchone()

        return {
            'total_entries': total,
            'stale_entries': sum(b['stale'] for b in by_class.values()),
            'by_class': by_class,
            'history_points': history[0],
            'history_symbols': history[1],
            'db_path': str(self.db_path)
        }

    async def stats(self, cutoff_for: Callable[[str], datetime]) -> Dict[str, Any]:
        return await self._run(self._stats, cutoff_for)

    async def close(self):
        await self._run(self._conn.close)
        self._executor.shutdown(wait=True)

# Global cache instance
_cache_store: Optional[CacheStore] = None

def get_cache_store() -> CacheStore:
    """Get or create the process-wide cache store"""
    global _cache_store
    if _cache_store is None:
        _cache_store = SQLiteCacheStore()
    return _cache_store

def set_cache_store(store: Optional[CacheStore]):
    """Install a specific store (or clear it) for the whole process"""
    global _cache_store
    _cache_store = store

def release_cache_store(store: CacheStore):
    """Forget the process-wide store if it is ``store`` (after closing it)"""
    global _cache_store
    if _cache_store is store:
        _cache_store = None
