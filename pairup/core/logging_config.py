"""
Logging infrastructure for pairup.

Provides structured logging with JSON formatting and redaction of storage
credentials. Repository loggers live under ``pairup.repositories.<table>``
and tag their records with the table they act on.
"""

import logging
import logging.handlers
import json
import sys
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pairup.core.config_manager import LoggingConfig

REPOSITORY_LOGGER_PREFIX = "pairup.repositories"

# The Azure SDK logs every HTTP request at INFO
AZURE_SDK_LOGGERS = ("azure", "azure.core.pipeline.policies.http_logging_policy")

REDACTION_PATTERNS = [
    (re.compile(r'(AccountKey=)[^;\s]+', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(SharedAccessSignature=)[^;\s]+', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(sig=)[^;&\s]+', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(Authorization:\s+)(?:SharedKey\s+|Bearer\s+)?\S+', re.IGNORECASE), r'\1***REDACTED***'),
]


def redact(text: str) -> str:
    """Mask account keys, SAS signatures and authorization headers in text."""
    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Filter to redact storage credentials from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from the rendered message."""
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        table = getattr(record, "table", None)
        if table:
            log_data["table"] = table

        if record.exc_info:
            log_data["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self):
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        table = getattr(record, "table", None)
        if table:
            first, _, rest = text.partition("\n")
            text = f"{first} (table={table})" + (f"\n{rest}" if rest else "")
        return redact(text)


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(SensitiveDataFilter())
    return handler


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure pairup logging.

    Azure SDK loggers are held at WARNING unless ``module_levels`` names
    them.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ("json" or "text")
        log_file: Optional file path for log output
        rotation_size: Size limit for log rotation (e.g., "10MB")
        rotation_count: Number of rotated log files to keep
        module_levels: Optional dict of module-specific log levels
                      e.g., {"pairup.repositories.UserData": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    # stdout is reserved for CLI output
    root_logger.addHandler(_build_handler(logging.StreamHandler(sys.stderr), formatter))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=_parse_size(rotation_size),
            backupCount=rotation_count,
            encoding='utf-8'
        )
        root_logger.addHandler(_build_handler(file_handler, formatter))
        root_logger.info(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    levels = {name: "WARNING" for name in AZURE_SDK_LOGGERS}
    levels.update(module_levels or {})
    for module_name, module_level in levels.items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    root_logger.debug(f"Logging configured: level={level}, format={format_type}")


def configure_logging(config: LoggingConfig) -> None:
    """Apply a validated logging configuration."""
    setup_logging(
        level=config.level,
        format_type=config.format,
        log_file=config.file,
        rotation_size=config.rotation_size,
        rotation_count=config.rotation_count,
        module_levels=config.module_levels,
    )


def _parse_size(size_str: str) -> int:
    """
    Parse size string to bytes.

    Args:
        size_str: Size string (e.g., "10MB", "1GB")

    Returns:
        Size in bytes
    """
    size_str = size_str.upper().strip()

    # Longest suffix first so 'MB' is not read as 'B'
    for suffix, multiplier in (('GB', 1024 ** 3), ('MB', 1024 ** 2), ('KB', 1024), ('B', 1)):
        if size_str.endswith(suffix):
            return int(float(size_str[:-len(suffix)].strip()) * multiplier)

    return int(size_str)


def get_repository_logger(table_name: str) -> logging.Logger:
    """Get the logger for the repository over ``table_name``."""
    return logging.getLogger(f"{REPOSITORY_LOGGER_PREFIX}.{table_name}")
