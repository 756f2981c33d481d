"""Unit tests for the SQLite cache store."""

from datetime import date, datetime, timedelta, timezone

import pytest

from quotecache.data.base import CacheEntry, HistoricalPoint
from quotecache.data.cache import format_timestamp, parse_timestamp

T0 = datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc)

PRICE_PAYLOAD = {
    'price': 150.0,
    'change': 2.0,
    'change_percent': 1.35,
    'currency': 'USD',
    'sector': 'Technology',
    'industry': 'Consumer Electronics'
}


class TestTimestamps:

    def test_round_trip_preserves_microseconds(self):
        moment = T0.replace(microsecond=123456)
        assert parse_timestamp(format_timestamp(moment)) == moment

    def test_naive_rejected(self):
        with pytest.raises(ValueError):
            format_timestamp(datetime(2024, 6, 3, 14, 0))

    def test_other_zones_normalized_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        assert format_timestamp(T0.astimezone(plus_two)) == format_timestamp(T0)


class TestGenericCache:
    """(symbol, cache_key) entries."""

    @pytest.mark.asyncio
    async def test_missing_entry(self, store):
        assert await store.get("AAPL", "price") is None

    @pytest.mark.asyncio
    async def test_price_stored_in_scalar_columns(self, store):
        await store.upsert(CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0))

        row = store._conn.execute(
            "SELECT price, change_percent, payload FROM market_cache WHERE symbol = 'AAPL'"
        ).fetchone()
        assert row["price"] == 150.0
        assert row["change_percent"] == 1.35
        assert row["payload"] is None

        entry = await store.get("AAPL", "price")
        assert entry.payload == PRICE_PAYLOAD
        assert entry.last_updated == T0

    @pytest.mark.asyncio
    async def test_structured_payload_round_trip(self, store):
        payload = {'assetProfile': {'sector': 'Technology', 'fullTimeEmployees': 161000}}
        await store.upsert(CacheEntry("AAPL", "summary:assetProfile", payload, T0))

        entry = await store.get("AAPL", "summary:assetProfile")
        assert entry.payload == payload

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        """Two writes of the same key leave one row holding the later write."""
        await store.upsert(CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0))
        await store.upsert(CacheEntry("AAPL", "price", {**PRICE_PAYLOAD, 'price': 151.0}, T0 + timedelta(minutes=1)))

        count = store._conn.execute("SELECT COUNT(*) FROM market_cache").fetchone()[0]
        entry = await store.get("AAPL", "price")

        assert count == 1
        assert entry.payload['price'] == 151.0
        assert entry.last_updated == T0 + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_older_write_does_not_replace_newer(self, store):
        await store.upsert(CacheEntry("AAPL", "price", {**PRICE_PAYLOAD, 'price': 151.0}, T0 + timedelta(minutes=1)))
        await store.upsert(CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0))

        entry = await store.get("AAPL", "price")
        assert entry.payload['price'] == 151.0

    @pytest.mark.asyncio
    async def test_unclassified_price_keeps_stored_classification(self, store):
        """A batch quote has no sector or currency; the newer row keeps the old ones."""
        await store.upsert(CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0))
        await store.upsert(CacheEntry(
            "AAPL", "price",
            {'price': 152.0, 'change': 4.0, 'change_percent': 2.7, 'currency': None, 'sector': None, 'industry': None},
            T0 + timedelta(minutes=20)
        ))

        entry = await store.get("AAPL", "price")
        assert entry.payload == {**PRICE_PAYLOAD, 'price': 152.0, 'change': 4.0, 'change_percent': 2.7}
        assert entry.last_updated == T0 + timedelta(minutes=20)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store):
        await store.upsert(CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0))
        await store.upsert(CacheEntry("AAPL", "summary:assetProfile", {'assetProfile': {}}, T0))

        assert (await store.get("AAPL", "price")).payload['price'] == 150.0
        assert (await store.get("AAPL", "summary:assetProfile")).payload == {'assetProfile': {}}

    @pytest.mark.asyncio
    async def test_get_many_with_freshness_filter(self, store):
        await store.upsert_many([
            CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0),
            CacheEntry("MSFT", "price", PRICE_PAYLOAD, T0 - timedelta(hours=1)),
            CacheEntry("GOOG", "price", PRICE_PAYLOAD, T0),
        ])

        every = await store.get_many(["AAPL", "MSFT", "TSLA"], "price")
        recent = await store.get_many(["AAPL", "MSFT", "TSLA"], "price", updated_after=T0 - timedelta(minutes=15))

        assert set(every) == {"AAPL", "MSFT"}
        assert set(recent) == {"AAPL"}

    @pytest.mark.asyncio
    async def test_get_many_empty(self, store):
        assert await store.get_many([], "price") == {}


class TestHistoricalCache:
    """(symbol, date) daily points."""

    @pytest.mark.asyncio
    async def test_range_query_sorted(self, store):
        points = [
            HistoricalPoint(date(2024, 1, 4), 102.0),
            HistoricalPoint(date(2024, 1, 2), 100.0),
            HistoricalPoint(date(2024, 1, 3), 101.0),
            HistoricalPoint(date(2024, 1, 5), 103.0),
        ]
        await store.upsert_history("AAPL", points, T0)

        result = await store.get_history("AAPL", date(2024, 1, 3), date(2024, 1, 4))

        assert [p.date for p in result] == [date(2024, 1, 3), date(2024, 1, 4)]
        assert [p.close for p in result] == [101.0, 102.0]

    @pytest.mark.asyncio
    async def test_point_overwrite(self, store):
        await store.upsert_history("AAPL", [HistoricalPoint(date(2024, 1, 2), 100.0)], T0)
        await store.upsert_history("AAPL", [HistoricalPoint(date(2024, 1, 2), 100.5)], T0 + timedelta(days=1))

        result = await store.get_history("AAPL", date(2024, 1, 1), date(2024, 1, 31))
        assert result == [HistoricalPoint(date(2024, 1, 2), 100.5)]

    @pytest.mark.asyncio
    async def test_symbols_isolated(self, store):
        await store.upsert_history("AAPL", [HistoricalPoint(date(2024, 1, 2), 100.0)], T0)

        assert await store.get_history("MSFT", date(2024, 1, 1), date(2024, 1, 31)) == []


class TestStats:

    @pytest.mark.asyncio
    async def test_counts_by_class(self, store):
        await store.upsert_many([
            CacheEntry("AAPL", "price", PRICE_PAYLOAD, T0),
            CacheEntry("MSFT", "price", PRICE_PAYLOAD, T0 - timedelta(hours=1)),
        ])
        await store.upsert(CacheEntry("AAPL", "chart:1y:1wk", {'points': [1]}, T0))
        await store.upsert_history("AAPL", [HistoricalPoint(date(2024, 1, 2), 100.0)], T0)

        stats = await store.stats(lambda cache_key: T0 - timedelta(minutes=15))

        assert stats['total_entries'] == 3
        assert stats['stale_entries'] == 1
        assert stats['by_class']['price'] == {'entries': 2, 'stale': 1}
        assert stats['by_class']['chart'] == {'entries': 1, 'stale': 0}
        assert stats['history_points'] == 1
        assert stats['history_symbols'] == 1
