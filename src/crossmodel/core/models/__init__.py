"""Data models for crossmodel."""

from crossmodel.core.models.base import Base, TimestampMixin
from crossmodel.core.models.data_source import DataSource
from crossmodel.core.models.join_catalog import (
    JoinCatalogEntry,
    JoinCatalogEntryResponse,
    JoinDefinition,
    JoinSideRef,
    JoinSuggestion,
    JoinType,
    SuggestionSource,
)
from crossmodel.core.models.metadata import (
    ColumnMetadata,
    ForeignKeyReference,
    TableMetadata,
    TableType,
    TypeTag,
)
from crossmodel.core.models.query import (
    AdditionalJoinCondition,
    Aggregate,
    CalculatedColumn,
    JoinCondition,
    JoinSide,
    Logic,
    OrderBy,
    QueryDescriptor,
    QueryOptions,
    SortDirection,
    TableRef,
    WhereClause,
)
from crossmodel.core.models.schemas import (
    ColumnDescriptor,
    ConnectionTestResult,
    DataSourceBase,
    DataSourceResponse,
    SchemaHashResult,
    TabularResult,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # SQLAlchemy models
    "DataSource",
    "JoinCatalogEntry",
    # Metadata
    "ColumnMetadata",
    "ForeignKeyReference",
    "TableMetadata",
    "TableType",
    "TypeTag",
    # Joins
    "JoinCatalogEntryResponse",
    "JoinDefinition",
    "JoinSideRef",
    "JoinSuggestion",
    "JoinType",
    "SuggestionSource",
    # Query descriptors
    "AdditionalJoinCondition",
    "Aggregate",
    "CalculatedColumn",
    "JoinCondition",
    "JoinSide",
    "Logic",
    "OrderBy",
    "QueryDescriptor",
    "QueryOptions",
    "SortDirection",
    "TableRef",
    "WhereClause",
    # Schemas
    "ColumnDescriptor",
    "ConnectionTestResult",
    "DataSourceBase",
    "DataSourceResponse",
    "SchemaHashResult",
    "TabularResult",
]
