"""
Logging configuration for quotecache
Provides structured logging with color support
"""

import functools
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import colorama
from colorama import Fore, Style

# Initialize colorama for Windows support
colorama.init()

LOG_COLORS = {
    'DEBUG': Fore.CYAN,
    'INFO': Fore.GREEN,
    'WARNING': Fore.YELLOW,
    'ERROR': Fore.RED,
    'CRITICAL': Fore.MAGENTA
}

class ColoredFormatter(logging.Formatter):
    """Console formatter that colors level and logger name on a TTY"""

    def __init__(self, fmt=None, datefmt=None, use_colors=True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record):
        record.timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        if not self.use_colors:
            return super().format(record)

        # Color a copy so other handlers see the plain record
        levelname, name = record.levelname, record.name
        if levelname in LOG_COLORS:
            record.levelname = f"{LOG_COLORS[levelname]}{levelname}{Style.RESET_ALL}"
            record.name = f"{Fore.BLUE}{name}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name

class StructuredLogger:
    """Wrapper for structured logging with persistent context"""

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self.logger = logger
        self.context = dict(context or {})

    def add_context(self, **kwargs):
        """Add persistent context to all log messages"""
        self.context.update(kwargs)

    def clear_context(self):
        self.context = {}

    def bind(self, **kwargs) -> 'StructuredLogger':
        """Return a child logger carrying extra context"""
        return StructuredLogger(self.logger, {**self.context, **kwargs})

    def _log(self, level, msg, *args, **kwargs):
        extra = dict(self.context)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        getattr(self.logger, level)(msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self._log('debug', msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self._log('info', msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self._log('warning', msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self._log('error', msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        self._log('exception', msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self._log('critical', msg, *args, **kwargs)

def setup_logger(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    use_colors: bool = True
) -> StructuredLogger:
    """
    Set up a logger with console and optional file output

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging
        use_colors: Whether to use colored output

    Returns:
        StructuredLogger instance
    """
    from ..config.settings import get_config
    config = get_config()

    if level is None:
        level = config.system.log_level
    if log_file is None:
        log_file = config.system.log_file

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_format = "%(timestamp)s [%(levelname)s] %(name)s: %(message)s"
    console_handler.setFormatter(ColoredFormatter(console_format, use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        file_handler.setFormatter(logging.Formatter(file_format))
        logger.addHandler(file_handler)

    logger.propagate = False

    return StructuredLogger(logger)

def get_logger(name: str) -> StructuredLogger:
    """
    Get or create a logger instance

    Args:
        name: Logger name (usually __name__)

    Returns:
        StructuredLogger instance
    """
    return setup_logger(name)

def log_async_performance(logger: Optional[StructuredLogger] = None):
    """Decorator to log the duration of a coroutine at DEBUG"""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            nonlocal logger
            if logger is None:
                logger = get_logger(func.__module__)

            start_time = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.monotonic() - start_time
                logger.debug(
                    f"Failed async {func.__name__} after {elapsed * 1000:.0f}ms: {e}",
                    extra={'duration_ms': int(elapsed * 1000)}
                )
                raise

            elapsed = time.monotonic() - start_time
            logger.debug(
                f"Completed async {func.__name__} in {elapsed * 1000:.0f}ms",
                extra={'duration_ms': int(elapsed * 1000)}
            )
            return result

        return wrapper
    return decorator
