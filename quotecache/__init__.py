"""
quotecache
Cached quote and fundamentals retrieval for portfolio dashboards
"""

__version__ = "0.1.0"
__author__ = "quotecache Team"

from . import config, data, utils

__all__ = ["config", "data", "utils"]
