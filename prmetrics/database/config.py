"""Database settings for the metrics sink.

Settings come from ``DATABASE_*`` environment variables (or a ``.env``
file). The ``POSTGRES_USER``/``POSTGRES_PASSWORD``/``POSTGRES_HOST``/
``POSTGRES_PORT``/``POSTGRES_DB`` names used by the stock postgres image are
accepted as well. A complete URL in ``DATABASE_URL`` wins over the parts.
Pool settings nest with a double underscore: ``DATABASE_POOL__POOL_SIZE``.
"""

from typing import Any
from urllib.parse import quote_plus, urlparse

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env(name: str, *legacy: str) -> AliasChoices:
    """Environment names of a field: ``DATABASE_<NAME>`` then legacy names."""
    return AliasChoices(f"database_{name}", *legacy)


class DatabasePoolConfig(BaseModel):
    """Connection pool sizing.

    Workers hold a connection only for the duration of one upsert, so the
    pool rarely needs to exceed the worker count.
    """

    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_pre_ping: bool = True
    pool_recycle: int = Field(default=3600, description="Seconds before reconnecting")
    pool_timeout: int = Field(default=30, description="Seconds to wait for a connection")


class DatabaseConfig(BaseSettings):
    """PostgreSQL connection settings."""

    database_url: str | None = Field(
        default=None,
        validation_alias=_env("url", "database_database_url"),
        description="Complete database URL (overrides individual components)",
    )
    host: str = Field(default="localhost", validation_alias=_env("host", "postgres_host"))
    port: int = Field(default=5432, validation_alias=_env("port", "postgres_port"))
    database: str = Field(
        default="pr_metrics", validation_alias=_env("database", "postgres_db")
    )
    username: str = Field(
        default="postgres", validation_alias=_env("username", "postgres_user")
    )
    password: str | None = Field(
        default=None,
        validation_alias=_env("password", "postgres_password"),
        description="Required unless a complete URL is given",
    )

    pool: DatabasePoolConfig = Field(default_factory=DatabasePoolConfig)

    echo_sql: bool = Field(default=False, description="Log every SQL statement")
    connect_timeout: int = Field(default=10, description="Seconds")
    command_timeout: int = Field(default=60, description="Seconds")

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: Any) -> Any:
        if v:
            parsed = urlparse(v)
            if not (parsed.scheme and parsed.hostname):
                raise ValueError("Invalid database URL format")
        return v

    @model_validator(mode="after")
    def construct_database_url(self) -> "DatabaseConfig":
        """Build the asyncpg URL from the parts once a password is known."""
        if not self.database_url and self.password:
            self.database_url = (
                f"postgresql+asyncpg://{quote_plus(self.username)}:"
                f"{quote_plus(self.password)}@{self.host}:{self.port}/{self.database}"
            )
        return self

    @property
    def is_configured(self) -> bool:
        """Whether enough settings exist to open a connection."""
        return bool(self.database_url)

    def get_sqlalchemy_url(self) -> str:
        """URL for the async engine; plain ``postgres(ql)://`` gets asyncpg.

        Raises:
            ValueError: If neither a URL nor a password is configured
        """
        if not self.database_url:
            raise ValueError(
                "No database URL available - provide either database_url or password"
            )
        for scheme in ("postgresql://", "postgres://"):
            if self.database_url.startswith(scheme):
                return "postgresql+asyncpg://" + self.database_url[len(scheme):]
        return self.database_url

    def get_alembic_url(self) -> str:
        """URL for Alembic, which runs migrations on a sync driver."""
        return self.get_sqlalchemy_url().replace("+asyncpg", "")
