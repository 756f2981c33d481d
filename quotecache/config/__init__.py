"""
Configuration module for quotecache
"""

from .settings import Config, CacheConfig, SystemConfig, UpstreamConfig, get_config, load_config, reset_config

__all__ = ["Config", "CacheConfig", "SystemConfig", "UpstreamConfig", "get_config", "load_config", "reset_config"]
