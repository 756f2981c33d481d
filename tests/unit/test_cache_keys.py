"""Unit tests for cache key construction."""

import pytest

from quotecache.data.cache_keys import (
    PRICE_KEY,
    chart_key,
    data_class_for_key,
    normalize_symbol,
    price_key,
    search_key,
    summary_key
)
from quotecache.data.freshness import DataClass


class TestSymbols:

    def test_normalize(self):
        assert normalize_symbol(" aapl ") == "AAPL"
        assert normalize_symbol("brk-b") == "BRK-B"

    @pytest.mark.parametrize("blank", ["", "   ", None])
    def test_blank_rejected(self, blank):
        with pytest.raises(ValueError):
            normalize_symbol(blank)


class TestKeys:

    def test_price_key(self):
        assert price_key() == PRICE_KEY == "price"

    def test_summary_key_is_order_independent(self):
        """Module order and duplicates never produce a different key."""
        a = summary_key(["financialData", "assetProfile"])
        b = summary_key(["assetProfile", "financialData", "assetProfile"])

        assert a == b == "summary:assetProfile,financialData"

    def test_summary_key_requires_modules(self):
        with pytest.raises(ValueError):
            summary_key([" ", ""])

    def test_chart_key(self):
        assert chart_key("1MO", "1d") == "chart:1mo:1d"

    def test_search_key_ignores_option_order_and_case(self):
        a = search_key("Apple  Inc", {"quotes_count": 10, "news_count": 0})
        b = search_key("apple inc", {"news_count": 0, "quotes_count": 10})

        assert a == b
        assert a.startswith("search:")
        assert a.endswith(":apple inc")

    def test_search_key_differs_by_options(self):
        assert search_key("apple", {"quotes_count": 10}) != search_key("apple", {"quotes_count": 5})

    def test_search_key_requires_query(self):
        with pytest.raises(ValueError):
            search_key("   ")


class TestClassification:

    @pytest.mark.parametrize("cache_key,data_class", [
        ("price", DataClass.PRICE),
        ("summary:assetProfile", DataClass.SUMMARY),
        ("search:0123456789abcdef:apple", DataClass.SEARCH),
        ("chart:1d:5m", DataClass.INTRADAY_CHART),
        ("chart:1y:1wk", DataClass.CHART),
    ])
    def test_data_class_for_key(self, cache_key, data_class):
        assert data_class_for_key(cache_key) is data_class

    def test_keys_built_here_classify_back(self):
        assert data_class_for_key(summary_key(["assetProfile"])) is DataClass.SUMMARY
        assert data_class_for_key(search_key("msft")) is DataClass.SEARCH

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            data_class_for_key("news:AAPL")
