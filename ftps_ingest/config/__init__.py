"""
Configuration management for ftps_ingest.

This module loads and validates connection, poll and logging settings from
YAML or JSON files and ``FTPS_INGEST_*`` environment variables.
"""

from .loader import ConfigLoader, load_config
from .models import GlobalConfig, LoggingConfig, LogLevel

__all__ = [
    "ConfigLoader",
    "load_config",
    "GlobalConfig",
    "LoggingConfig",
    "LogLevel",
]
