"""
Configuration loader for ftps_ingest.

This module loads configuration from a YAML or JSON file and from
environment variables, then validates the merged result.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import GlobalConfig


class ConfigLoader:
    """Configuration loader with support for multiple sources."""

    env_prefix = "FTPS_INGEST_"

    # Environment variable suffix -> path into the configuration tree
    env_mappings: Dict[str, Tuple[str, ...]] = {
        # Connection
        "HOST": ("connection", "host"),
        "PORT": ("connection", "port"),
        "USERNAME": ("connection", "username"),
        "PASSWORD": ("connection", "password"),
        "TLS_MODE": ("connection", "tls_mode"),
        "CONNECTION_MODE": ("connection", "connection_mode"),
        "TRANSFER_MODE": ("connection", "transfer_mode"),
        "CONNECTION_TIMEOUT": ("connection", "connection_timeout"),
        "DATA_TIMEOUT": ("connection", "data_timeout"),
        "BUFFER_SIZE": ("connection", "buffer_size"),
        "ENCODING": ("connection", "encoding"),
        "ALLOW_SELF_SIGNED": ("connection", "allow_self_signed"),
        "REUSE_SESSION": ("connection", "reuse_session"),
        # Poll
        "REMOTE_PATH": ("poll", "remote_path"),
        "FILE_FILTER": ("poll", "file_filter"),
        "PATH_FILTER": ("poll", "path_filter"),
        "RECURSIVE": ("poll", "recursive"),
        "FOLLOW_SYMLINKS": ("poll", "follow_symlinks"),
        "IGNORE_DOTTED_FILES": ("poll", "ignore_dotted_files"),
        "IGNORE_MARKER": ("poll", "ignore_marker"),
        "DELETE_ORIGINAL": ("poll", "delete_original"),
        "POLLING_INTERVAL": ("poll", "polling_interval"),
        "MAX_SELECTS": ("poll", "max_selects"),
        "REMOTE_POLL_BATCH_SIZE": ("poll", "remote_poll_batch_size"),
        "NATURAL_ORDERING": ("poll", "natural_ordering"),
        "MAX_DEPTH": ("poll", "max_depth"),
        # Logging
        "LOG_LEVEL": ("logging", "level"),
        "LOG_FILE": ("logging", "file_path"),
        "LOG_FORMAT": ("logging", "format"),
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Initialize configuration loader.

        Args:
            environ: Environment to read variables from (defaults to os.environ)
        """
        self.environ = environ if environ is not None else os.environ

    def load_config(
        self,
        config_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> GlobalConfig:
        """
        Load configuration from all available sources.

        Precedence, lowest first: file, environment variables, overrides.

        Args:
            config_file: YAML or JSON file to load
            overrides: Nested dict applied last (e.g. from CLI flags)

        Returns:
            Validated GlobalConfig

        Raises:
            ConfigurationError: If a source cannot be read or validation fails
        """
        config_data: Dict[str, Any] = {}

        if config_file is not None:
            config_data = self._parse_config_file(Path(config_file))

        config_data = self._deep_merge(config_data, self._load_from_environment())
        if overrides:
            config_data = self._deep_merge(config_data, overrides)

        try:
            return GlobalConfig(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _parse_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Parse configuration file based on extension."""
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        suffix = config_path.suffix.lower()
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                if suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                elif suffix == ".json":
                    data = json.load(f)
                else:
                    raise ConfigurationError(
                        f"Unsupported config file format: {config_path.suffix}"
                    )
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse config file {config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        for suffix, config_path in self.env_mappings.items():
            value = self.environ.get(f"{self.env_prefix}{suffix}")
            if value is None:
                continue
            # pydantic coerces the strings into the field types
            current = config
            for key in config_path[:-1]:
                current = current.setdefault(key, {})
            current[config_path[-1]] = value

        return config

    def _deep_merge(
        self, base: Dict[str, Any], override: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> GlobalConfig:
    """Load configuration using the process environment."""
    return ConfigLoader().load_config(config_file, overrides)
