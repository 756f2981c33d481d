"""
Utility modules for quotecache
"""

from .logger import setup_logger, get_logger, log_async_performance, StructuredLogger

__all__ = [
    "setup_logger",
    "get_logger",
    "log_async_performance",
    "StructuredLogger"
]
