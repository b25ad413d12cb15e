"""
Configuration management for pairup.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RepositoryOptions(BaseModel):
    """Options shared by every table storage repository."""
    storage_account_connection_string: Optional[str] = Field(
        default=None,
        description="Azure Storage connection string, or UseInMemoryStorage=true"
    )
    ensure_table_exists: bool = Field(
        default=True,
        description="Create tables while repositories are constructed"
    )

    @field_validator("storage_account_connection_string")
    @classmethod
    def validate_connection_string(cls, v: Optional[str]) -> Optional[str]:
        """Reject blank connection strings."""
        if v is not None and not v.strip():
            raise ValueError("Connection string must not be blank")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'pairup.storage': 'DEBUG'}"
    )


class PairUpConfig(BaseModel):
    """Main pairup configuration schema."""

    repository: RepositoryOptions = Field(default_factory=RepositoryOptions, validate_default=True)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: RepositoryOptions) -> RepositoryOptions:
        """Require a storage account connection string."""
        if v.storage_account_connection_string is None:
            raise ValueError(
                "storage_account_connection_string is required "
                "(set PAIRUP_STORAGE_CONNECTION_STRING or use UseInMemoryStorage=true)"
            )
        return v

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages pairup configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (PAIRUP_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[PairUpConfig] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> PairUpConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated PairUpConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading pairup configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = PairUpConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        if connection_string := os.getenv("PAIRUP_STORAGE_CONNECTION_STRING"):
            config.setdefault("repository", {})["storage_account_connection_string"] = connection_string
        if ensure_table_exists := os.getenv("PAIRUP_ENSURE_TABLE_EXISTS"):
            config.setdefault("repository", {})["ensure_table_exists"] = (
                ensure_table_exists.lower() in ['true', '1', 'yes']
            )

        if log_level := os.getenv("PAIRUP_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("PAIRUP_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file
        if log_format := os.getenv("PAIRUP_LOG_FORMAT"):
            config.setdefault("logging", {})["format"] = log_format.lower()

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with the account key redacted)."""
        if not self._config:
            return

        config_dict = self._config.model_dump()

        repository = config_dict["repository"]
        repository["storage_account_connection_string"] = re.sub(
            r'(AccountKey=)[^;]+',
            r'\1***REDACTED***',
            repository["storage_account_connection_string"],
            flags=re.IGNORECASE,
        )

        logger.info(f"Active configuration: {json.dumps(config_dict, indent=2)}")

    def get_config(self) -> PairUpConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config
