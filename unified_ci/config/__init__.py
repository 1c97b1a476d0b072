"""Configuration management for unified-ci.

Example usage:
    from unified_ci.config import load_config

    config = load_config("config.yaml")
    db_file = config.core.db_file
"""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .loader import (
    ConfigurationLoader,
    get_config,
    load_config,
    set_config,
    with_verbose_logging,
)
from .models import (
    Config,
    CoreConfig,
    GitHubConfig,
    HTTPConfig,
    LogConfig,
    LogLevel,
    QueueConfig,
    ScannerConfig,
)

__all__ = [
    "Config",
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationLoader",
    "ConfigurationValidationError",
    "CoreConfig",
    "GitHubConfig",
    "HTTPConfig",
    "LogConfig",
    "LogLevel",
    "QueueConfig",
    "ScannerConfig",
    "get_config",
    "load_config",
    "set_config",
    "with_verbose_logging",
]
