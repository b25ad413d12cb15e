"""
Core configuration and logging for pairup.
"""

from .config_manager import ConfigManager, PairUpConfig, RepositoryOptions
from .logging_config import configure_logging, get_repository_logger, setup_logging

__all__ = [
    "ConfigManager",
    "PairUpConfig",
    "RepositoryOptions",
    "configure_logging",
    "get_repository_logger",
    "setup_logging",
]
