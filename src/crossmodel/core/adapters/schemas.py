"""Configuration schemas for data source adapters."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator


class SSLMode(str, Enum):
    """libpq SSL negotiation modes."""

    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


class PostgreSQLConfig(BaseModel):
    """Configuration for PostgreSQL connections."""

    host: str = Field(..., description="Database server hostname")
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(..., description="Database name")
    username: str = Field(..., description="Login role")
    password: SecretStr = Field(..., description="Login password")
    ssl_mode: SSLMode = Field(default=SSLMode.PREFER)
    connect_timeout: int = Field(
        default=10,
        ge=1,
        le=300,
        description="Connection timeout in seconds",
    )

    # Filtering
    exclude_schemas: list[str] = Field(
        default_factory=lambda: ["pg_catalog", "information_schema", "pg_toast"],
        description="Schemas never introspected",
    )
    schema_filter: str | None = Field(
        default=None,
        description="Regex pattern to filter schemas (e.g., '^(sales|marketing)$')",
    )


class SQLiteConfig(BaseModel):
    """Configuration for SQLite database files."""

    path: str = Field(..., description="Path to the SQLite database file")
    schema_name: str = Field(default="main", description="Schema name reported for tables")

    @field_validator("path")
    @classmethod
    def expand_path(cls, value: str) -> str:
        if value == ":memory:":
            return value
        return str(Path(value).expanduser())


class FlatFileConfig(BaseModel):
    """Configuration for a directory of delimited text files.

    Each matching file is exposed as one table named after the file stem.
    """

    directory: str = Field(..., description="Directory containing the files")
    pattern: str = Field(default="*.csv", description="Glob pattern selecting files")
    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = Field(default="utf-8")
    schema_name: str = Field(default="files", description="Schema name reported for tables")
    type_sample_rows: int = Field(
        default=100,
        ge=1,
        description="Rows inspected when inferring column types",
    )

    @field_validator("directory")
    @classmethod
    def expand_directory(cls, value: str) -> str:
        return str(Path(value).expanduser())


class MongoDBConfig(BaseModel):
    """Configuration for MongoDB document stores."""

    uri: SecretStr = Field(..., description="Connection URI (mongodb:// or mongodb+srv://)")
    database: str = Field(..., description="Database exposed as the schema")
    sample_size: int | None = Field(
        default=None,
        ge=1,
        description="Documents sampled per collection (default: CROSSMODEL_DOCUMENT_SAMPLE_SIZE)",
    )
    server_selection_timeout_ms: int = Field(default=5000, ge=100)
