"""Pydantic schemas for request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crossmodel.core.models.metadata import TypeTag

# =============================================================================
# Data Source Schemas
# =============================================================================


class DataSourceBase(BaseModel):
    """Base fields for data sources."""

    name: str = Field(..., description="Unique identifier for the source")
    display_name: str | None = Field(None, description="Human-readable display name")
    source_type: str = Field(..., description="Type of data source (e.g., postgresql)")
    is_active: bool = Field(True, description="Whether the source is active")


class DataSourceResponse(DataSourceBase):
    """Schema for data source responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Connection Test Schemas
# =============================================================================


class ConnectionTestResult(BaseModel):
    """Result of testing a source connection."""

    source_name: str
    connected: bool
    message: str | None = None
    latency_ms: float | None = None


# =============================================================================
# Schema Hash Schemas
# =============================================================================


class SchemaHashResult(BaseModel):
    """Structural fingerprint of a data source, or of one schema within it."""

    source_name: str
    data_source_id: int
    schema_name: str | None = None
    schema_hash: str
    table_count: int
    changed: bool | None = Field(
        None, description="Whether the hash differs from a supplied previous hash"
    )


# =============================================================================
# Query Result Schemas
# =============================================================================


class ColumnDescriptor(BaseModel):
    """Name and normalized type of a result column."""

    name: str
    type_tag: TypeTag = TypeTag.UNKNOWN


class TabularResult(BaseModel):
    """Rows returned by a query, keyed by output column name."""

    columns: list[ColumnDescriptor] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    truncated: bool = Field(False, description="Whether the tenant row limit cut the result")
    federated: bool = False
