"""Pydantic configuration models for the metrics scraper.

The configuration hierarchy follows this structure:
- ScraperConfig: Root configuration
- GitHubSettings: API endpoints, token and client limits
- BackoffSettings: Retry policy constants
- ScraperSettings: Run settings (concurrency, listing strategy, progress)
- LoggingSettings: Log level and format

Environment variables are substituted using the format ${VAR_NAME} with
optional defaults: ${VAR_NAME:default_value}
"""

import os
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..github.backoff import BackoffPolicy
from ..github.client import GitHubClientConfig
from ..workers.listing import ListingStrategy

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def substitute_env(value: Any) -> Any:
    """Replace ``${VAR}`` and ``${VAR:default}`` references recursively.

    Raises:
        ValueError: If a referenced variable is unset and has no default
    """
    if isinstance(value, Enum):
        return value
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            var_name, default_value = match.group(1), match.group(2)
            env_value = os.getenv(var_name)
            if env_value is not None:
                return env_value
            if default_value is not None:
                return default_value
            raise ValueError(f"Required environment variable '{var_name}' not found")

        return _ENV_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env(item) for item in value]
    return value


class BaseConfigModel(BaseModel):
    """Base configuration model with environment variable substitution."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def substitute_env_vars(cls, values: Any) -> Any:
        """Substitute environment variables in string values."""
        if isinstance(values, dict):
            return substitute_env(values)
        return values


class GitHubSettings(BaseConfigModel):
    """GitHub API access settings."""

    token: str | None = Field(
        default=None, description="Personal access token; anonymous when unset"
    )
    base_url: str = Field(default="https://api.github.com")
    graphql_url: str = Field(default="https://api.github.com/graphql")
    timeout: int = Field(default=30, ge=1, le=600, description="Request timeout")
    user_agent: str = Field(default="pr-comment-metrics/1.0")
    max_concurrent_requests: int = Field(
        default=10, ge=1, le=100, description="In-flight HTTP request limit"
    )

    def to_client_config(self) -> GitHubClientConfig:
        return GitHubClientConfig(
            base_url=self.base_url,
            graphql_url=self.graphql_url,
            timeout=self.timeout,
            user_agent=self.user_agent,
            max_concurrent_requests=self.max_concurrent_requests,
        )


class BackoffSettings(BaseConfigModel):
    """Retry policy constants, in seconds unless stated otherwise."""

    rate_limit_floor: float = Field(default=5.0, ge=0)
    rate_limit_margin: float = Field(default=1.0, ge=0)
    abuse_default_wait: float = Field(default=10.0, ge=0)
    server_error_wait: float = Field(default=3.0, ge=0)
    max_server_error_retries: int = Field(
        default=5, ge=0, description="Retries granted to 5xx responses"
    )
    bulk_base_wait: float = Field(default=0.5, ge=0)
    bulk_max_wait: float = Field(default=10.0, ge=0)
    bulk_jitter_step: float = Field(default=0.05, ge=0)
    bulk_max_attempts: int = Field(
        default=6, ge=1, description="Total attempts for bulk queries"
    )

    def to_policy(self) -> BackoffPolicy:
        return BackoffPolicy(**self.model_dump())


class ScraperSettings(BaseConfigModel):
    """Settings of a single run."""

    concurrency: int = Field(default=4, ge=1, le=64, description="Worker count")
    lister: ListingStrategy = Field(
        default=ListingStrategy.GRAPHQL, description="Pull request listing strategy"
    )
    progress_interval: float = Field(
        default=5.0, gt=0, description="Seconds between progress log lines"
    )
    per_page: int = Field(default=100, ge=1, le=100)
    dry_run: bool = Field(
        default=False, description="Compute rows without writing them"
    )


class LoggingSettings(BaseConfigModel):
    """Logging settings."""

    level: LogLevel = Field(default=LogLevel.INFO)
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class ScraperConfig(BaseConfigModel):
    """Root configuration."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    backoff: BackoffSettings = Field(default_factory=BackoffSettings)
    scraper: ScraperSettings = Field(default_factory=ScraperSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
