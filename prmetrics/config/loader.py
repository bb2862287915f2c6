"""Configuration loading.

The loading hierarchy is:
1. Default values from Pydantic models
2. Configuration file (YAML), with ${VAR:default} substitution
3. Environment variables (GITHUB_TOKEN)
4. Command line overrides, applied by the CLI
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import ConfigurationFileError, ConfigurationValidationError
from .models import ScraperConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "PRMETRICS_CONFIG_PATH"
TOKEN_ENV = "GITHUB_TOKEN"


class ConfigurationLoader:
    """Loads and validates :class:`ScraperConfig` from various sources."""

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ
        self._config_file_path: Path | None = None

    @property
    def config_file_path(self) -> Path | None:
        """Path of the file the last configuration came from."""
        return self._config_file_path

    def load_from_file(self, config_path: str | Path) -> ScraperConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationFileError(
                f"Configuration file not found: {config_path}",
                file_path=str(config_path),
            )
        if not config_path.is_file():
            raise ConfigurationFileError(
                f"Configuration path is not a file: {config_path}",
                file_path=str(config_path),
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationFileError(
                f"Failed to parse YAML configuration: {e}", file_path=str(config_path)
            ) from e
        except OSError as e:
            raise ConfigurationFileError(
                f"Failed to read configuration file: {e}", file_path=str(config_path)
            ) from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationFileError(
                "Configuration file must contain a mapping at the top level",
                file_path=str(config_path),
            )

        config = self.load_from_dict(config_data)
        self._config_file_path = config_path.resolve()
        logger.debug(f"Loaded configuration from {self._config_file_path}")
        return config

    def load_from_dict(self, config_data: dict[str, Any]) -> ScraperConfig:
        """Load configuration from a dictionary.

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        try:
            config = ScraperConfig(**config_data)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}",
                validation_errors=e.errors(),
            ) from e
        return self.apply_env_overrides(config)

    def load_default(self) -> ScraperConfig:
        """Configuration with model defaults plus environment overrides."""
        return self.load_from_dict({})

    def apply_env_overrides(self, config: ScraperConfig) -> ScraperConfig:
        """Take the GitHub token from ``GITHUB_TOKEN`` when it is set."""
        token = self._environ.get(TOKEN_ENV)
        if token:
            config.github.token = token
        return config

    def find_config_file(self, filename: str = "config.yaml") -> Path | None:
        """Look in ``$PRMETRICS_CONFIG_PATH`` then the working directory."""
        search_paths = []

        env_path_str = self._environ.get(CONFIG_PATH_ENV)
        if env_path_str:
            env_path = Path(env_path_str)
            search_paths.append(env_path if env_path.suffix else env_path / filename)

        search_paths.append(Path.cwd() / filename)

        for path in search_paths:
            if path.is_file():
                return path
        return None

    def load(self, config_path: str | Path | None = None) -> ScraperConfig:
        """Load ``config_path``, else a discovered file, else defaults."""
        if config_path is not None:
            return self.load_from_file(config_path)

        found = self.find_config_file()
        if found is not None:
            return self.load_from_file(found)
        return self.load_default()
