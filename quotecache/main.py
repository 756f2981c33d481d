"""
Main entry point for quotecache
Provides CLI commands for querying and inspecting the market data cache
"""

import asyncio
from datetime import date, timedelta
from typing import Awaitable, Callable

import click

from quotecache.config.settings import get_config
from quotecache.data.market import MarketDataService
from quotecache.utils.logger import get_logger

logger = get_logger(__name__)

def run_with_service(action: Callable[[MarketDataService], Awaitable]):
    """Run one coroutine against a fresh service, flushing writes afterwards"""

    async def runner():
        service = MarketDataService()
        await service.initialize()
        try:
            return await action(service)
        finally:
            await service.shutdown()

    return asyncio.run(runner())

def format_quote(quote) -> str:
    sign = "+" if quote.change >= 0 else ""
    line = (
        f"{quote.ticker:<10} {quote.price:>12.2f} "
        f"{sign}{quote.change:.2f} ({sign}{quote.change_percent:.2f}%)"
    )
    if quote.currency:
        line += f" {quote.currency}"
    return line + f"  as of {quote.last_updated:%Y-%m-%d %H:%M:%S %Z}"

@click.group()
def cli():
    """Cached market data CLI"""
    pass

@cli.command()
@click.argument("symbol")
@click.option("--force", is_flag=True, help="Bypass the fresh-cache check")
def quote(symbol, force):
    """Current price for SYMBOL"""
    result = run_with_service(lambda s: s.get_current_price(symbol, force=force))
    if result is None:
        click.echo(f"No price available for {symbol.upper()}")
        raise SystemExit(1)
    click.echo(format_quote(result))

@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.option("--force", is_flag=True, help="Bypass the fresh-cache check")
def quotes(symbols, force):
    """Current prices for several SYMBOLS in one batch"""
    wanted = sorted({s.strip().upper() for s in symbols if s.strip()})
    limit = get_config().upstream.max_batch_size
    if len(wanted) > limit:
        logger.warning(f"Batch of {len(wanted)} symbols truncated to {limit}")
        click.echo(f"Only the first {limit} of {len(wanted)} symbols are fetched", err=True)
        wanted = wanted[:limit]

    results = run_with_service(lambda s: s.get_batch_prices(wanted, force=force))
    for symbol in wanted:
        if symbol in results:
            click.echo(format_quote(results[symbol]))
        else:
            click.echo(f"{symbol:<10} {'unavailable':>12}")

@cli.command()
@click.argument("symbol")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="First day (default: 30 days ago)")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Last day (default: today)")
def history(symbol, start, end):
    """Daily closes for SYMBOL"""
    start_day = start.date() if start else date.today() - timedelta(days=30)
    end_day = end.date() if end else None

    points = run_with_service(lambda s: s.get_historical_prices(symbol, start_day, end_day))
    if not points:
        click.echo(f"No history available for {symbol.upper()}")
        raise SystemExit(1)
    for point in points:
        click.echo(f"{point.date.isoformat()}  {point.close:.2f}")

@cli.command()
@click.argument("query")
def search(query):
    """Search equities and ETFs"""
    results = run_with_service(lambda s: s.get_cached_search(query))
    if not results:
        click.echo("No matches")
        return
    for result in results:
        click.echo(f"{result['symbol']:<10} {result['type']:<6} {result.get('exchange') or '':<10} {result['name']}")

@cli.command()
def status():
    """Show configuration and cache statistics"""
    logger.info("Cache status check")
    config = get_config()

    click.echo("\nConfiguration:")
    click.echo(f"  Log level: {config.system.log_level}")
    click.echo(f"  Market timezone: {config.system.timezone}")
    click.echo(f"  Cache database: {config.cache.db_path}")
    click.echo(f"  Price TTL: {config.cache.price_ttl_minutes} min")
    click.echo(f"  Summary TTL: {config.cache.summary_ttl_minutes} min")
    click.echo(f"  Quote timeout: {config.upstream.quote_timeout}s, batch timeout: {config.upstream.batch_timeout}s")

    stats = run_with_service(lambda s: s.cache_stats())

    click.echo("\nCache:")
    click.echo(f"  Entries: {stats['total_entries']} ({stats['stale_entries']} stale)")
    for data_class, counts in sorted(stats['by_class'].items()):
        click.echo(f"    {data_class}: {counts['entries']} ({counts['stale']} stale)")
    click.echo(f"  Historical points: {stats['history_points']} across {stats['history_symbols']} symbols")

if __name__ == "__main__":
    cli()
