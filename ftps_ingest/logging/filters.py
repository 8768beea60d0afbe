"""
Custom logging filters for ftps_ingest.

This module provides filters for credential masking and component-specific
filtering.
"""

import logging
import re
from typing import List, Pattern, Set, Tuple


class SensitiveDataFilter(logging.Filter):
    """Filter to mask credentials in log messages."""

    def __init__(self) -> None:
        """Initialize sensitive data filter."""
        super().__init__()

        # (pattern, replacement) pairs applied in order
        self.rules: List[Tuple[Pattern[str], str]] = [
            # Passwords in key/value form
            (
                re.compile(
                    r'(password|passwd|pwd)(["\']?\s*[:=]\s*["\']?)([^\s"\',}]+)',
                    re.IGNORECASE,
                ),
                r"\1\2***MASKED***",
            ),
            # Raw FTP PASS command
            (re.compile(r"\b(PASS\s+)(\S+)"), r"\1***MASKED***"),
            # URLs with credentials
            (
                re.compile(r"((?:ftps?|https?)://[^:/@\s]+):([^@\s]+)@", re.IGNORECASE),
                r"\1:***MASKED***@",
            ),
        ]

    def mask(self, message: str) -> str:
        """Apply all masking rules to a message."""
        for pattern, replacement in self.rules:
            message = pattern.sub(replacement, message)
        return message

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log record to mask sensitive data."""
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # malformed format args; let the handler report it
            return True

        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


class ComponentFilter(logging.Filter):
    """Filter for component-specific logging."""

    def __init__(self, component: str, allowed_levels: Set[str] | None = None) -> None:
        """
        Initialize component filter.

        Args:
            component: Logger name prefix to accept
            allowed_levels: Set of allowed log levels
        """
        super().__init__()
        self.component = component
        self.allowed_levels = allowed_levels or {
            "DEBUG",
            "INFO",
            "WARNING",
            "ERROR",
            "CRITICAL",
        }

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter based on component and level."""
        if not (
            record.name == self.component
            or record.name.startswith(self.component + ".")
        ):
            return False

        return record.levelname in self.allowed_levels
