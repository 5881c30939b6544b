"""Deterministic structural fingerprints of data sources and tables."""

import hashlib
from collections.abc import Iterable

from crossmodel.core.catalog.reader import SchemaCatalogReader
from crossmodel.core.models.metadata import TableMetadata


def _structure_tuples(tables: Iterable[TableMetadata]) -> list[tuple[str, str, int, str, str]]:
    rows = []
    for table in tables:
        # Marks the table itself, so column-less tables still count
        rows.append((table.schema_name, table.table_name, -1, "", ""))
        for column in table.columns:
            rows.append((
                table.schema_name,
                table.table_name,
                column.ordinal_position,
                column.column_name,
                column.data_type,
            ))
    return sorted(rows)


def generate_hash_from_tables(tables: Iterable[TableMetadata]) -> str:
    """Fingerprint a set of tables.

    The hash depends only on the sorted (schema, table, ordinal, column, type)
    tuples, so the order tables or columns are supplied in never matters.

    Args:
        tables: Tables to fingerprint.

    Returns:
        Hex sha256 digest.
    """
    payload = "|".join(
        f"{schema}:{table}:{ordinal}:{column}:{data_type}"
        for schema, table, ordinal, column, data_type in _structure_tuples(tables)
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def generate_table_hash(table: TableMetadata) -> str:
    """Fingerprint a single table."""
    return generate_hash_from_tables([table])


class SchemaHashTracker:
    """Computes and compares structural fingerprints of live data sources."""

    def __init__(self, reader: SchemaCatalogReader) -> None:
        self.reader = reader

    async def generate_schema_hash(self, source_id: int, schema: str | None = None) -> str:
        """Fingerprint a data source, or one schema within it.

        Raises:
            AdapterConnectionError: If the source is unreachable.
        """
        tables = await self.reader.introspect(source_id, schema)
        return generate_hash_from_tables(tables)

    async def has_schema_changed(
        self,
        source_id: int,
        previous_hash: str,
        schema: str | None = None,
    ) -> bool:
        """Whether the current fingerprint differs from a previously captured one."""
        return await self.generate_schema_hash(source_id, schema) != previous_hash

    # Pure helpers exposed on the tracker for convenience
    generate_hash_from_tables = staticmethod(generate_hash_from_tables)
    generate_table_hash = staticmethod(generate_table_hash)
