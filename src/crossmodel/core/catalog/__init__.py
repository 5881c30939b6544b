"""Schema introspection, type normalization and structural fingerprints."""

from crossmodel.core.catalog.reader import SchemaCatalogReader, build_table_metadata
from crossmodel.core.catalog.schema_hash import (
    SchemaHashTracker,
    generate_hash_from_tables,
    generate_table_hash,
)
from crossmodel.core.catalog.types import are_compatible, normalize_type

__all__ = [
    "SchemaCatalogReader",
    "SchemaHashTracker",
    "are_compatible",
    "build_table_metadata",
    "generate_hash_from_tables",
    "generate_table_hash",
    "normalize_type",
]
