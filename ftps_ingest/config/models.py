"""
Configuration models for ftps_ingest.

This module defines the top-level configuration container and the logging
configuration; connection and poll settings live in ftps_ingest.ftp.models.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..ftp.models import ConnectionConfig, PollConfig


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Default logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    file_path: Optional[Path] = Field(default=None, description="Log file path")
    max_file_size: int = Field(
        default=10 * 1024 * 1024, gt=0, description="Max log file size in bytes"
    )
    backup_count: int = Field(default=5, ge=0, description="Number of backup log files")
    enable_console: bool = Field(default=True, description="Enable console logging")
    enable_structured: bool = Field(
        default=False, description="Enable structured JSON logging"
    )

    # Component-specific log levels
    component_levels: Dict[str, LogLevel] = Field(
        default_factory=dict, description="Per-component log levels"
    )


class GlobalConfig(BaseModel):
    """Global configuration container."""

    connection: ConnectionConfig
    poll: PollConfig = Field(default_factory=PollConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")
