"""Database configuration, connections and schema management."""

from .config import DatabaseConfig, DatabasePoolConfig
from .connection import DatabaseConnectionManager
from .schema import ensure_schema

__all__ = [
    "DatabaseConfig",
    "DatabaseConnectionManager",
    "DatabasePoolConfig",
    "ensure_schema",
]
