"""
Yahoo Finance adapter for market data
yfinance is synchronous, so every call runs on a thread pool
"""

import asyncio
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd
import yfinance as yf

from ..config import get_config
from ..utils import get_logger, log_async_performance
from .base import DataProvider, HistoricalPoint, MarketDataAdapter, PriceQuote, utc_now

logger = get_logger(__name__)

PROFILE_FIELDS = (
    "sector", "industry", "longBusinessSummary", "website", "country",
    "city", "fullTimeEmployees", "longName", "shortName"
)

# Modules answered from Ticker.info
INFO_MODULES = frozenset({"price", "summaryDetail", "defaultKeyStatistics", "financialData", "quoteType"})
PROFILE_MODULES = frozenset({"assetProfile", "summaryProfile"})

# Modules answered from a Ticker attribute holding a DataFrame or dict
FRAME_MODULES = {
    "incomeStatementHistory": "income_stmt",
    "incomeStatementHistoryQuarterly": "quarterly_income_stmt",
    "balanceSheetHistory": "balance_sheet",
    "balanceSheetHistoryQuarterly": "quarterly_balance_sheet",
    "cashflowStatementHistory": "cashflow",
    "cashflowStatementHistoryQuarterly": "quarterly_cashflow",
    "recommendationTrend": "recommendations",
    "calendarEvents": "calendar",
}

def _clean(value: Any) -> Any:
    """Convert pandas/numpy scalars into JSON-safe Python values"""
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value

def _frame_to_dict(frame: Any) -> Any:
    """DataFrame -> {column: {row: value}}; dicts pass through cleaned"""
    if frame is None:
        return None
    if isinstance(frame, dict):
        return {str(k): _clean(v) if not isinstance(v, list) else [_clean(i) for i in v] for k, v in frame.items()}
    if isinstance(frame, pd.DataFrame):
        if frame.empty:
            return None
        result = {}
        for column in frame.columns:
            key = column.strftime("%Y-%m-%d") if hasattr(column, "strftime") else str(column)
            result[key] = {str(idx): _clean(v) for idx, v in frame[column].items()}
        return result
    return _clean(frame)

def _close_series(frame: pd.DataFrame, symbol: str) -> Optional[pd.Series]:
    """Close column of one symbol from a yf.download frame"""
    if frame is None or frame.empty:
        return None
    if isinstance(frame.columns, pd.MultiIndex):
        if symbol not in frame.columns.get_level_values(0):
            return None
        series = frame[symbol]["Close"]
    else:
        series = frame["Close"]
    series = series.dropna()
    return series if not series.empty else None

class YahooFinanceAdapter(MarketDataAdapter):
    """
    Yahoo Finance adapter using the yfinance library.
    Methods raise on provider errors; timeouts are imposed by the caller.

    yfinance blocks, so every call runs on a bounded thread pool
    (UPSTREAM_MAX_WORKERS). A call the caller has timed out on cannot be
    interrupted: its thread stays busy until yfinance returns, and enough
    hung calls leave later requests queued behind them until their own
    timeouts fire. The cache keeps answering from stale rows meanwhile.
    """

    def __init__(self, max_workers: Optional[int] = None):
        super().__init__(DataProvider.YAHOO)
        workers = max_workers or get_config().upstream.max_workers
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="quotecache-yahoo")

    async def _call(self, func: Callable, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, lambda: func(*args, **kwargs))

    async def connect(self):
        """No connection needed for yfinance"""
        self.is_connected = True
        logger.info("Yahoo Finance adapter ready")

    async def disconnect(self):
        self.executor.shutdown(wait=False)
        self.is_connected = False

    async def health_check(self) -> bool:
        try:
            quote = await self.get_quote("AAPL")
            return quote is not None
        except Exception as e:
            logger.error(f"Yahoo Finance health check failed: {e}")
            return False

    def _quote_from_info(self, symbol: str, info: Dict[str, Any]) -> Optional[PriceQuote]:
        price = info.get("regularMarketPrice") or info.get("currentPrice")
        if price is None:
            return None
        return PriceQuote(
            ticker=symbol,
            price=float(price),
            change=float(info.get("regularMarketChange") or 0),
            change_percent=float(info.get("regularMarketChangePercent") or 0),
            last_updated=utc_now(),
            sector=info.get("sector"),
            industry=info.get("industry"),
            currency=info.get("currency")
        )

    @log_async_performance()
    async def get_quote(self, symbol: str) -> Optional[PriceQuote]:
        """Current quote; sector/industry come along from the same profile payload"""
        ticker = yf.Ticker(symbol)
        info = await self._call(lambda: ticker.info)

        if not info:
            logger.warning(f"No quote data available for {symbol}")
            return None
        return self._quote_from_info(symbol, info)

    def _download_quotes(self, symbols: List[str]) -> Dict[str, PriceQuote]:
        frame = yf.download(
            tickers=symbols,
            period="5d",
            interval="1d",
            group_by="ticker",
            auto_adjust=False,
            progress=False,
            threads=True
        )

        results = {}
        for symbol in symbols:
            closes = _close_series(frame, symbol)
            if closes is None:
                continue

            price = float(closes.iloc[-1])
            previous = float(closes.iloc[-2]) if len(closes) > 1 else price
            change = price - previous
            results[symbol] = PriceQuote(
                ticker=symbol,
                price=price,
                change=change,
                change_percent=(change / previous * 100) if previous else 0.0,
                last_updated=utc_now()
            )
        return results

    @log_async_performance()
    async def get_quotes(self, symbols: Sequence[str]) -> Dict[str, PriceQuote]:
        """Quotes for several symbols from one download request"""
        if not symbols:
            return {}
        return await self._call(self._download_quotes, list(symbols))

    def _build_summary(self, symbol: str, modules: Sequence[str]) -> Dict[str, Any]:
        ticker = yf.Ticker(symbol)
        info: Optional[Dict[str, Any]] = None
        summary: Dict[str, Any] = {}

        for module in modules:
            if module in INFO_MODULES or module in PROFILE_MODULES:
                if info is None:
                    info = ticker.info or {}
                if module in PROFILE_MODULES:
                    summary[module] = {f: info.get(f) for f in PROFILE_FIELDS if info.get(f) is not None}
                else:
                    summary[module] = {k: _clean(v) for k, v in info.items()}
            elif module in FRAME_MODULES:
                summary[module] = _frame_to_dict(getattr(ticker, FRAME_MODULES[module]))
            else:
                logger.warning(f"Unsupported summary module {module!r} for {symbol}")

        return summary

    @log_async_performance()
    async def get_summary(self, symbol: str, modules: Sequence[str]) -> Dict[str, Any]:
        return await self._call(self._build_summary, symbol, list(modules))

    def _build_chart(self, symbol: str, range_: str, interval: str) -> List[Dict[str, Any]]:
        frame = yf.Ticker(symbol).history(period=range_, interval=interval, auto_adjust=False)
        if frame is None or frame.empty:
            return []

        points = []
        for idx, row in frame.iterrows():
            if pd.isna(row["Close"]):
                continue
            points.append({
                "date": idx.to_pydatetime().isoformat(),
                "open": _clean(row["Open"]),
                "high": _clean(row["High"]),
                "low": _clean(row["Low"]),
                "close": float(row["Close"]),
                "volume": int(row["Volume"]) if not pd.isna(row["Volume"]) else None
            })
        return points

    @log_async_performance()
    async def get_chart(self, symbol: str, range_: str, interval: str) -> List[Dict[str, Any]]:
        return await self._call(self._build_chart, symbol, range_, interval)

    def _search(self, query: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        result = yf.Search(
            query,
            max_results=int(options.get("quotes_count", 10)),
            news_count=int(options.get("news_count", 0))
        )
        return list(result.quotes or [])

    @log_async_performance()
    async def search(self, query: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._call(self._search, query, options)

    def _build_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        # yfinance treats ``end`` as exclusive
        frame = yf.Ticker(symbol).history(
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=False
        )
        if frame is None or frame.empty:
            return []

        points = []
        for idx, row in frame.iterrows():
            close = row.get("Close")
            if close is None or pd.isna(close):
                close = row.get("Adj Close")
            if close is None or pd.isna(close):
                continue
            points.append(HistoricalPoint(date=idx.date(), close=float(close)))
        return points

    @log_async_performance()
    async def get_history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        return await self._call(self._build_history, symbol, start, end)
