"""Configuration loading.

Reads the YAML configuration document, validates it against the pydantic
models and keeps the process-wide configuration instance. The configuration
is read-only after startup; ``set_config`` exists so the CLI can install a
derived copy (for example with ``-verbose`` log levels) before any task runs.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .models import Config, LogLevel


class ConfigurationLoader:
    """Loads and validates configuration from YAML files or dictionaries."""

    def __init__(self) -> None:
        self._config: Config | None = None

    def load_from_file(self, config_path: str | Path) -> Config:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationFileError(
                f"Configuration file not found: {config_path}", str(config_path)
            )

        if not config_path.is_file():
            raise ConfigurationFileError(
                f"Configuration path is not a file: {config_path}", str(config_path)
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationFileError(
                f"Failed to parse YAML configuration: {e}", str(config_path)
            ) from e
        except OSError as e:
            raise ConfigurationFileError(
                f"Failed to read configuration file: {e}", str(config_path)
            ) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationFileError(
                "Configuration document must be a mapping", str(config_path)
            )

        return self.load_from_dict(config_data)

    def load_from_dict(self, config_data: dict[str, Any]) -> Config:
        """Load configuration from a dictionary.

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        try:
            self._config = Config(**config_data)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}", e.errors()
            ) from e
        except ValueError as e:
            # env substitution failures surface as plain ValueError
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}"
            ) from e

        return self._config

    def set(self, config: Config) -> None:
        """Replace the loaded configuration."""
        self._config = config

    @property
    def config(self) -> Config | None:
        """Get the loaded configuration."""
        return self._config

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._config is not None


# Global configuration loader instance
_loader = ConfigurationLoader()


def load_config(config_path: str | Path) -> Config:
    """Load the process configuration from ``config_path``.

    Raises:
        ConfigurationError: If configuration cannot be loaded or is invalid
    """
    try:
        return _loader.load_from_file(config_path)
    except (ConfigurationFileError, ConfigurationValidationError) as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e


def get_config() -> Config:
    """Get the currently loaded configuration.

    Raises:
        ConfigurationError: If no configuration has been loaded
    """
    if not _loader.is_loaded or _loader.config is None:
        raise ConfigurationError("No configuration loaded. Call load_config() first.")

    return _loader.config


def set_config(config: Config) -> Config:
    """Install ``config`` as the process configuration and return it."""
    _loader.set(config)
    return config


def with_verbose_logging(config: Config) -> Config:
    """Return a copy of ``config`` with both log sinks at the most detailed level."""
    log = config.log.model_copy(
        update={"access_level": LogLevel.DEBUG, "error_level": LogLevel.DEBUG}
    )
    return config.model_copy(update={"log": log})
