"""Configuration management for the metrics scraper."""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
)
from .loader import ConfigurationLoader
from .models import (
    BackoffSettings,
    GitHubSettings,
    LoggingSettings,
    LogLevel,
    ScraperConfig,
    ScraperSettings,
)

__all__ = [
    "BackoffSettings",
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationLoader",
    "ConfigurationValidationError",
    "GitHubSettings",
    "LogLevel",
    "LoggingSettings",
    "ScraperConfig",
    "ScraperSettings",
]
