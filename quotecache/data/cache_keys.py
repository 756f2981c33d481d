"""
Single source of truth for cache keys.

Readers and writers of the generic cache must build keys through these
functions so the two never drift apart.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Optional

from .freshness import DataClass, chart_data_class

PRICE_KEY = "price"
SUMMARY_PREFIX = "summary"
CHART_PREFIX = "chart"
SEARCH_PREFIX = "search"

# Symbol under which non-ticker caches (search) are stored
SEARCH_SYMBOL = "__SEARCH__"

def normalize_symbol(symbol: str) -> str:
    """Uppercase ticker identity; raises ValueError for blank input"""
    normalized = (symbol or "").strip().upper()
    if not normalized:
        raise ValueError("symbol must not be blank")
    return normalized

def price_key() -> str:
    return PRICE_KEY

def summary_key(modules: Iterable[str]) -> str:
    """``summary:<sorted,module,list>``"""
    unique = sorted({m.strip() for m in modules if m and m.strip()})
    if not unique:
        raise ValueError("at least one summary module is required")
    return f"{SUMMARY_PREFIX}:{','.join(unique)}"

def chart_key(range_: str, interval: str) -> str:
    return f"{CHART_PREFIX}:{range_.lower()}:{interval}"

def options_hash(options: Optional[Dict[str, Any]]) -> str:
    """Stable short hash of search options"""
    raw = json.dumps(options or {}, sort_keys=True)
    return hashlib.md5(raw.encode()).hexdigest()[:16]

def search_key(query: str, options: Optional[Dict[str, Any]] = None) -> str:
    """``search:<options-hash>:<query>``, query compared case-insensitively"""
    normalized = " ".join(query.split()).lower()
    if not normalized:
        raise ValueError("search query must not be blank")
    return f"{SEARCH_PREFIX}:{options_hash(options)}:{normalized}"

def data_class_for_key(cache_key: str) -> DataClass:
    """Classify a stored cache key back into its data class"""
    if cache_key == PRICE_KEY:
        return DataClass.PRICE

    prefix, _, rest = cache_key.partition(":")
    if prefix == SUMMARY_PREFIX:
        return DataClass.SUMMARY
    if prefix == SEARCH_PREFIX:
        return DataClass.SEARCH
    if prefix == CHART_PREFIX:
        return chart_data_class(rest.split(":", 1)[0])

    raise ValueError(f"Unknown cache key: {cache_key!r}")
