"""Schema catalog reader: normalized table metadata for a data source."""

import logging
from typing import Any

from crossmodel.core.adapters.exceptions import AdapterConnectionError, AdapterError
from crossmodel.core.catalog.types import normalize_type
from crossmodel.core.interfaces import SourceDriver
from crossmodel.core.models.metadata import (
    ColumnMetadata,
    ForeignKeyReference,
    TableMetadata,
    TableType,
)

logger = logging.getLogger(__name__)


def build_table_metadata(
    source_id: int,
    source_type: str | None,
    objects: list[dict[str, Any]],
    columns: list[dict[str, Any]],
    foreign_keys: list[dict[str, Any]] | None = None,
) -> list[TableMetadata]:
    """Assemble TableMetadata from the raw dicts an adapter reports.

    Args:
        source_id: Data source the objects belong to.
        source_type: Adapter type, recorded on every column.
        objects: Output of ``SourceAdapter.get_objects()``.
        columns: Output of ``SourceAdapter.get_columns()``.
        foreign_keys: Output of ``SourceAdapter.get_foreign_keys()``.

    Returns:
        Tables sorted by (schema, table), columns by ordinal position.
    """
    references: dict[tuple[str, str, str], ForeignKeyReference] = {}
    for fk in foreign_keys or []:
        key = (fk["source_schema"], fk["source_table"], fk["source_column"])
        references[key] = ForeignKeyReference(
            local_schema=fk["source_schema"],
            local_table=fk["source_table"],
            local_column=fk["source_column"],
            foreign_schema=fk["target_schema"],
            foreign_table=fk["target_table"],
            foreign_column=fk["target_column"],
        )

    columns_by_table: dict[tuple[str, str], list[ColumnMetadata]] = {}
    for col in columns:
        schema_name, table_name = col["schema_name"], col["object_name"]
        columns_by_table.setdefault((schema_name, table_name), []).append(
            ColumnMetadata(
                column_name=col["column_name"],
                data_type=col.get("data_type") or "",
                type_tag=normalize_type(col.get("data_type")),
                max_length=col.get("max_length"),
                ordinal_position=col.get("position") or 0,
                schema_name=schema_name,
                table_name=table_name,
                reference=references.get((schema_name, table_name, col["column_name"])),
                data_source_id=source_id,
                data_source_type=source_type,
            )
        )

    tables: dict[tuple[str, str], TableMetadata] = {}
    for obj in objects:
        key = (obj["schema_name"], obj["object_name"])
        if key in tables:
            continue
        tables[key] = TableMetadata(
            data_source_id=source_id,
            schema_name=obj["schema_name"],
            table_name=obj["object_name"],
            table_type=TableType(obj.get("object_type", "TABLE")),
            columns=sorted(
                columns_by_table.get(key, []),
                key=lambda c: c.ordinal_position,
            ),
        )

    return [tables[key] for key in sorted(tables)]


class SchemaCatalogReader:
    """Reads normalized table metadata for data sources through a driver.

    Metadata is always read fresh; nothing is cached here.
    """

    def __init__(self, driver: SourceDriver) -> None:
        """Initialize the reader.

        Args:
            driver: Fetch capability used to introspect sources.
        """
        self.driver = driver

    async def introspect(
        self,
        source_id: int,
        schema: str | None = None,
    ) -> list[TableMetadata]:
        """List the tables of a data source.

        Args:
            source_id: Data source to introspect.
            schema: Restrict to one schema.

        Returns:
            Tables sorted by (schema, table).

        Raises:
            AdapterConnectionError: If the source is unreachable, annotated
                with the source id.
            AdapterError: For other adapter failures, annotated likewise.
        """
        try:
            tables = await self.driver.introspect(source_id)
        except AdapterError as e:
            raise e.annotate(source_id)
        except OSError as e:
            raise AdapterConnectionError(
                f"Data source unreachable: {e}",
                source_id=source_id,
            ) from e

        if schema is not None:
            tables = [t for t in tables if t.schema_name == schema]
        logger.debug(f"Introspected {len(tables)} tables from data source {source_id}")
        return sorted(tables, key=lambda t: (t.schema_name, t.table_name))

    async def introspect_or_empty(
        self,
        source_id: int,
        schema: str | None = None,
    ) -> list[TableMetadata]:
        """Like ``introspect`` but returns an empty list when the source fails."""
        try:
            return await self.introspect(source_id, schema)
        except AdapterError as e:
            logger.warning(f"Introspection of data source {source_id} failed: {e}")
            return []

    async def get_table(
        self,
        source_id: int,
        table_name: str,
        schema: str | None = None,
    ) -> TableMetadata | None:
        """Find one table of a data source by name, case-insensitively.

        Returns:
            The table, or None when absent or ambiguous across schemas.
        """
        lowered = table_name.lower()
        matches = [
            table
            for table in await self.introspect(source_id, schema)
            if table.table_name.lower() == lowered
        ]
        if len(matches) != 1:
            return None
        return matches[0]
