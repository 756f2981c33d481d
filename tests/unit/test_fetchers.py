"""Unit tests for typed fetchers: validation and payload codecs."""

from datetime import date, datetime, timezone

import pytest

from quotecache.config import UpstreamConfig
from quotecache.data.base import HistoricalPoint, PriceQuote
from quotecache.data.fetchers import (
    MAX_SEARCH_RESULTS,
    ChartFetcher,
    HistoryFetcher,
    QuoteFetcher,
    SearchFetcher,
    SummaryFetcher
)
from quotecache.data.freshness import DataClass
from quotecache.data.upstream import InvalidPayload, UpstreamClient

T0 = datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def upstream(adapter):
    return UpstreamClient(adapter, UpstreamConfig())


class TestQuoteFetcher:

    def test_missing_price_is_invalid(self, upstream):
        fetcher = QuoteFetcher(upstream)

        with pytest.raises(InvalidPayload):
            fetcher.validate("AAPL", None)
        with pytest.raises(InvalidPayload):
            fetcher.validate("AAPL", PriceQuote(ticker="AAPL", price=None))

    def test_decode_uses_symbol_and_stored_timestamp(self, upstream):
        fetcher = QuoteFetcher(upstream)
        quote = PriceQuote("aapl", 150.0, 2.0, 1.35, sector="Technology", currency="USD")

        decoded = fetcher.decode("AAPL", fetcher.encode(quote), T0)

        assert decoded.ticker == "AAPL"
        assert (decoded.price, decoded.change, decoded.change_percent) == (150.0, 2.0, 1.35)
        assert decoded.sector == "Technology"
        assert decoded.last_updated == T0

    def test_cache_key(self, upstream):
        fetcher = QuoteFetcher(upstream)
        assert fetcher.cache_key() == "price"
        assert fetcher.data_class is DataClass.PRICE


class TestSummaryFetcher:

    def test_modules_sorted_and_deduplicated(self, upstream):
        fetcher = SummaryFetcher(upstream, ["financialData", "assetProfile", "financialData"])
        assert fetcher.modules == ["assetProfile", "financialData"]
        assert fetcher.cache_key() == "summary:assetProfile,financialData"

    def test_all_modules_empty_is_invalid(self, upstream):
        fetcher = SummaryFetcher(upstream, ["assetProfile"])

        with pytest.raises(InvalidPayload):
            fetcher.validate("AAPL", {'assetProfile': {}})

        value = {'assetProfile': {'sector': 'Technology'}}
        assert fetcher.validate("AAPL", value) == value


class TestChartFetcher:

    @pytest.mark.asyncio
    async def test_fetch_wraps_points(self, adapter, upstream):
        adapter.chart_mock.return_value = [{'date': '2024-06-03', 'close': 150.0}]
        fetcher = ChartFetcher(upstream, "1mo", "1d")

        value = await fetcher.fetch("AAPL")

        assert value == {
            'symbol': 'AAPL', 'range': '1mo', 'interval': '1d',
            'points': [{'date': '2024-06-03', 'close': 150.0}]
        }
        adapter.chart_mock.assert_awaited_once_with("AAPL", "1mo", "1d")

    def test_empty_series_is_invalid(self, upstream):
        with pytest.raises(InvalidPayload):
            ChartFetcher(upstream, "1mo", "1d").validate("AAPL", {'points': []})

    def test_data_class_follows_range(self, upstream):
        assert ChartFetcher(upstream, "1d", "5m").data_class is DataClass.INTRADAY_CHART
        assert ChartFetcher(upstream, "1y", "1wk").data_class is DataClass.CHART


class TestSearchFetcher:

    @pytest.mark.asyncio
    async def test_filters_to_equities_and_etfs(self, adapter, upstream):
        adapter.search_mock.return_value = [
            {'symbol': 'AAPL', 'shortname': 'Apple Inc.', 'exchDisp': 'NASDAQ', 'quoteType': 'EQUITY'},
            {'symbol': 'AAPL240621C00150000', 'quoteType': 'OPTION'},
            {'symbol': 'APLE', 'longname': 'Apple Hospitality REIT', 'exchange': 'NYQ', 'quoteType': 'EQUITY'},
            {'symbol': 'AAPLX', 'quoteType': 'MUTUALFUND'},
            {'symbol': 'AAPY', 'quoteType': 'ETF'},
        ]
        fetcher = SearchFetcher(upstream, "apple", {"quotes_count": 10})

        results = await fetcher.fetch("__SEARCH__")

        assert [r['symbol'] for r in results] == ['AAPL', 'APLE', 'AAPY']
        assert results[0] == {'symbol': 'AAPL', 'name': 'Apple Inc.', 'exchange': 'NASDAQ', 'type': 'EQUITY'}
        assert results[1]['name'] == 'Apple Hospitality REIT'
        assert results[1]['exchange'] == 'NYQ'
        assert results[2]['name'] == 'AAPY'

    @pytest.mark.asyncio
    async def test_result_cap(self, adapter, upstream):
        adapter.search_mock.return_value = [
            {'symbol': f'SYM{i}', 'quoteType': 'EQUITY'} for i in range(20)
        ]

        results = await SearchFetcher(upstream, "sym").fetch("__SEARCH__")

        assert len(results) == MAX_SEARCH_RESULTS

    def test_empty_result_is_valid(self, upstream):
        fetcher = SearchFetcher(upstream, "zzzz")

        assert fetcher.validate("__SEARCH__", []) == []
        with pytest.raises(InvalidPayload):
            fetcher.validate("__SEARCH__", None)


class TestHistoryFetcher:

    def test_validate_clips_deduplicates_and_sorts(self, upstream):
        fetcher = HistoryFetcher(upstream)
        points = [
            HistoricalPoint(date(2024, 1, 5), 103.0),
            HistoricalPoint(date(2023, 12, 29), 99.0),
            HistoricalPoint(date(2024, 1, 2), 100.0),
            HistoricalPoint(date(2024, 1, 2), 100.0),
            HistoricalPoint(date(2024, 1, 9), 105.0),
        ]

        result = fetcher.validate("AAPL", points, date(2024, 1, 1), date(2024, 1, 8))

        assert [p.date for p in result] == [date(2024, 1, 2), date(2024, 1, 5)]

    def test_nothing_in_range_is_invalid(self, upstream):
        with pytest.raises(InvalidPayload):
            HistoryFetcher(upstream).validate("AAPL", [], date(2024, 1, 1), date(2024, 1, 8))
