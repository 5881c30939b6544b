"""Source adapters for crossmodel."""

from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.adapters.exceptions import (
    AdapterAuthenticationError,
    AdapterConfigurationError,
    AdapterConnectionError,
    AdapterError,
    AdapterNotFoundError,
    AdapterQueryError,
)
from crossmodel.core.adapters.registry import AdapterInfo, AdapterRegistry
from crossmodel.core.adapters.schemas import (
    FlatFileConfig,
    MongoDBConfig,
    PostgreSQLConfig,
    SQLiteConfig,
    SSLMode,
)
from crossmodel.core.adapters.sqlite import SQLiteAdapter
from crossmodel.core.adapters.flatfile import FlatFileAdapter
from crossmodel.core.adapters.mongodb import MongoDBAdapter
from crossmodel.core.adapters.postgresql import PostgreSQLAdapter

__all__ = [
    # Base
    "SourceAdapter",
    # Registry
    "AdapterRegistry",
    "AdapterInfo",
    # Exceptions
    "AdapterError",
    "AdapterConnectionError",
    "AdapterAuthenticationError",
    "AdapterConfigurationError",
    "AdapterQueryError",
    "AdapterNotFoundError",
    # Config schemas
    "FlatFileConfig",
    "MongoDBConfig",
    "PostgreSQLConfig",
    "SQLiteConfig",
    "SSLMode",
    # Adapters
    "FlatFileAdapter",
    "MongoDBAdapter",
    "PostgreSQLAdapter",
    "SQLiteAdapter",
]
