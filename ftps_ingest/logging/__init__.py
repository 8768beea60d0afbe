"""
Logging setup for ftps_ingest.

This module provides console and rotating file logging with credential
masking and optional structured JSON output.
"""

from .filters import ComponentFilter, SensitiveDataFilter
from .formatters import ColoredFormatter, StructuredFormatter
from .manager import LoggingManager, cleanup_logging, get_logger, setup_logging

__all__ = [
    "LoggingManager",
    "setup_logging",
    "get_logger",
    "cleanup_logging",
    "StructuredFormatter",
    "ColoredFormatter",
    "SensitiveDataFilter",
    "ComponentFilter",
]
