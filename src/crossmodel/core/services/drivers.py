"""Source driver backed by configured data sources and registered adapters."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from crossmodel.core.adapters import AdapterConfigurationError, AdapterError, AdapterRegistry
from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.catalog.reader import build_table_metadata
from crossmodel.core.models import DataSource, TableMetadata
from crossmodel.core.query.plan import NativeQuery
from crossmodel.core.repositories import DataSourceRepository

logger = logging.getLogger(__name__)


class AdapterSourceDriver:
    """Resolves data source ids to adapters and runs work against them.

    A fresh adapter connection is opened for each call and closed when the
    call returns, so concurrent calls never share a connection.
    """

    def __init__(self, session: Session) -> None:
        self.repo = DataSourceRepository(session)

    def _adapter(self, source_id: int) -> tuple[DataSource, SourceAdapter]:
        source = self.repo.get_by_id(source_id)
        if source is None:
            raise AdapterConfigurationError(
                f"Data source {source_id} is not configured",
                source_id=source_id,
            )
        try:
            adapter = AdapterRegistry.get_adapter(source.source_type, source.connection_info)
        except AdapterError as e:
            raise e.annotate(source_id)
        return source, adapter

    async def introspect(self, source_id: int) -> list[TableMetadata]:
        """Read the tables, columns and foreign keys of a data source.

        Raises:
            AdapterError: Annotated with ``source_id``.
        """
        source, adapter = self._adapter(source_id)
        try:
            async with adapter:
                objects = await adapter.get_objects()
                columns = await adapter.get_columns(
                    [(obj["schema_name"], obj["object_name"]) for obj in objects]
                )
                foreign_keys = await adapter.get_foreign_keys()
        except AdapterError as e:
            raise e.annotate(source_id)
        return build_table_metadata(
            source_id,
            source.source_type,
            objects,
            columns,
            foreign_keys,
        )

    async def query(self, source_id: int, native_query: NativeQuery) -> list[dict[str, Any]]:
        """Run a native query and return rows keyed by its fields.

        Raises:
            AdapterError: Annotated with ``source_id``.
        """
        _, adapter = self._adapter(source_id)
        logger.debug(f"Querying data source {source_id}: {native_query.describe()}")
        try:
            async with adapter:
                return await adapter.execute_query(native_query)
        except AdapterError as e:
            raise e.annotate(source_id)
