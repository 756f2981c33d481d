"""
Configuration management for quotecache
Loads environment variables and provides centralized settings
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

@dataclass
class SystemConfig:
    """System-level configuration"""
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    timezone: str = "America/New_York"
    data_dir: Path = field(default_factory=lambda: Path.cwd() / "data")

@dataclass
class CacheConfig:
    """Cache store and freshness configuration"""
    db_path: Optional[Path] = None

    # Freshness thresholds
    price_ttl_minutes: int = 15
    summary_ttl_minutes: int = 7 * 24 * 60
    search_ttl_minutes: int = 120
    intraday_chart_ttl_minutes: int = 15
    chart_ttl_minutes: int = 24 * 60

    # Historical completeness
    history_tail_tolerance_days: int = 1
    history_max_gap_days: int = 5

@dataclass
class UpstreamConfig:
    """Upstream provider limits (timeouts in seconds)"""
    quote_timeout: float = 3.0
    search_timeout: float = 3.0
    chart_timeout: float = 4.0
    batch_timeout: float = 10.0
    summary_timeout: float = 10.0
    history_timeout: float = 15.0

    max_workers: int = 5
    max_batch_size: int = 30

@dataclass
class Config:
    """Main configuration container"""
    system: SystemConfig
    cache: CacheConfig
    upstream: UpstreamConfig

    def __post_init__(self):
        if self.cache.db_path is None:
            self.cache.db_path = self.system.data_dir / "market_cache.db"

def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))

def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))

# Singleton instance
_config_instance: Optional[Config] = None

def load_config() -> Config:
    """Build a configuration from the current environment"""
    log_file = os.getenv("LOG_FILE")
    data_dir = os.getenv("QUOTECACHE_DATA_DIR")
    db_path = os.getenv("CACHE_DB_PATH")

    system_config = SystemConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=Path(log_file) if log_file else None,
        timezone=os.getenv("MARKET_TIMEZONE", "America/New_York"),
        data_dir=Path(data_dir) if data_dir else Path.cwd() / "data"
    )

    cache_config = CacheConfig(
        db_path=Path(db_path) if db_path else None,
        price_ttl_minutes=_env_int("PRICE_TTL_MINUTES", 15),
        summary_ttl_minutes=_env_int("SUMMARY_TTL_MINUTES", 7 * 24 * 60),
        search_ttl_minutes=_env_int("SEARCH_TTL_MINUTES", 120),
        intraday_chart_ttl_minutes=_env_int("INTRADAY_CHART_TTL_MINUTES", 15),
        chart_ttl_minutes=_env_int("CHART_TTL_MINUTES", 24 * 60),
        history_tail_tolerance_days=_env_int("HISTORY_TAIL_TOLERANCE_DAYS", 1),
        history_max_gap_days=_env_int("HISTORY_MAX_GAP_DAYS", 5)
    )

    upstream_config = UpstreamConfig(
        quote_timeout=_env_float("UPSTREAM_QUOTE_TIMEOUT", 3.0),
        search_timeout=_env_float("UPSTREAM_SEARCH_TIMEOUT", 3.0),
        chart_timeout=_env_float("UPSTREAM_CHART_TIMEOUT", 4.0),
        batch_timeout=_env_float("UPSTREAM_BATCH_TIMEOUT", 10.0),
        summary_timeout=_env_float("UPSTREAM_SUMMARY_TIMEOUT", 10.0),
        history_timeout=_env_float("UPSTREAM_HISTORY_TIMEOUT", 15.0),
        max_workers=_env_int("UPSTREAM_MAX_WORKERS", 5),
        max_batch_size=_env_int("MAX_BATCH_SIZE", 30)
    )

    return Config(
        system=system_config,
        cache=cache_config,
        upstream=upstream_config
    )

def get_config() -> Config:
    """Get or create the configuration singleton"""
    global _config_instance

    if _config_instance is None:
        _config_instance = load_config()

    return _config_instance

def reset_config():
    """Reset the configuration singleton (mainly for testing)"""
    global _config_instance
    _config_instance = None
