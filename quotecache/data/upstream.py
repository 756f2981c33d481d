"""
Upstream client: a uniform, timeout-bounded call surface over a market-data adapter
"""

import asyncio
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from ..config import UpstreamConfig, get_config
from ..utils import get_logger
from .base import HistoricalPoint, MarketDataAdapter, PriceQuote

logger = get_logger(__name__)

class UpstreamError(Exception):
    """The upstream provider failed to produce a usable answer"""
    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")

class UpstreamTimeout(UpstreamError):
    """The upstream provider did not answer within its time budget"""
    def __init__(self, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(operation, f"timed out after {timeout:.1f}s")

class InvalidPayload(UpstreamError):
    """The upstream call 'succeeded' but returned nothing meaningful"""

async def call_with_timeout(operation: str, awaitable: Awaitable, timeout: float):
    """
    Await an upstream call, bounded by ``timeout`` seconds.

    On timeout the awaiting task is cancelled and its eventual result is
    discarded; work already handed to a thread keeps running. The caller
    only ever sees ``UpstreamTimeout``. Any other failure surfaces as
    ``UpstreamError``.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        logger.debug(f"Abandoned {operation} after {timeout:.1f}s")
        raise UpstreamTimeout(operation, timeout) from None
    except UpstreamError:
        raise
    except Exception as e:
        raise UpstreamError(operation, str(e) or type(e).__name__) from e

class UpstreamClient:
    """Wraps every adapter call with the timeout configured for its class"""

    def __init__(self, adapter: MarketDataAdapter, config: Optional[UpstreamConfig] = None):
        self.adapter = adapter
        self.config = config or get_config().upstream

    async def quote(self, symbol: str) -> Optional[PriceQuote]:
        return await call_with_timeout(
            f"quote {symbol}", self.adapter.get_quote(symbol), self.config.quote_timeout
        )

    async def quotes(self, symbols: Sequence[str]) -> Dict[str, PriceQuote]:
        return await call_with_timeout(
            f"quote batch ({len(symbols)} symbols)",
            self.adapter.get_quotes(list(symbols)),
            self.config.batch_timeout
        )

    async def summary(self, symbol: str, modules: Sequence[str]) -> Dict[str, Any]:
        return await call_with_timeout(
            f"summary {symbol}", self.adapter.get_summary(symbol, list(modules)), self.config.summary_timeout
        )

    async def chart(self, symbol: str, range_: str, interval: str) -> List[Dict[str, Any]]:
        return await call_with_timeout(
            f"chart {symbol} {range_}/{interval}",
            self.adapter.get_chart(symbol, range_, interval),
            self.config.chart_timeout
        )

    async def search(self, query: str, options: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await call_with_timeout(
            f"search {query!r}", self.adapter.search(query, options), self.config.search_timeout
        )

    async def history(self, symbol: str, start: date, end: date) -> List[HistoricalPoint]:
        return await call_with_timeout(
            f"history {symbol} {start}..{end}",
            self.adapter.get_history(symbol, start, end),
            self.config.history_timeout
        )
