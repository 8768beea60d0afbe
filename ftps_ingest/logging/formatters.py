"""
Custom logging formatters for ftps_ingest.

This module provides structured JSON and colored console formatters.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else was passed via ``extra``
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colored console logging formatter."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: Optional[bool] = None,
    ):
        """
        Initialize colored formatter.

        Args:
            fmt: Log format string
            datefmt: Date format string
            use_colors: Whether to use colors (auto-detect if None)
        """
        super().__init__(fmt, datefmt)

        if use_colors is None:
            use_colors = (
                hasattr(sys.stderr, "isatty")
                and sys.stderr.isatty()
                and sys.platform != "win32"
            )

        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        formatted = super().format(record)
        if not self.use_colors:
            return formatted

        color = self.COLORS.get(record.levelname, "")
        if color:
            level_colored = f"{color}{self.BOLD}{record.levelname}{self.RESET}"
            formatted = formatted.replace(record.levelname, level_colored, 1)

        return formatted
