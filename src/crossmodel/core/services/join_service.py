"""Service for join discovery and the join catalog."""

import asyncio
import logging

from sqlalchemy.orm import Session

from crossmodel.config import get_settings
from crossmodel.core.adapters import AdapterError
from crossmodel.core.catalog import SchemaCatalogReader, generate_table_hash
from crossmodel.core.interfaces import SourceDriver
from crossmodel.core.joins import JoinCandidateGenerator
from crossmodel.core.models import (
    JoinCatalogEntry,
    JoinDefinition,
    JoinSideRef,
    JoinSuggestion,
    TableMetadata,
    TableRef,
)
from crossmodel.core.repositories import DataSourceRepository, JoinCatalogRepository
from crossmodel.core.services.drivers import AdapterSourceDriver

logger = logging.getLogger(__name__)


class JoinServiceError(Exception):
    """Raised when a join service operation fails."""

    pass


class TableNotFoundError(JoinServiceError):
    """Raised when a table or column of a join does not exist."""

    def __init__(
        self,
        data_source_id: int,
        table_name: str,
        column_name: str | None = None,
    ) -> None:
        if column_name is None:
            message = f"Table not found in data source {data_source_id}: {table_name!r}"
        else:
            message = (
                f"Column not found in data source {data_source_id}: "
                f"{table_name}.{column_name}"
            )
        super().__init__(message)
        self.data_source_id = data_source_id
        self.table_name = table_name
        self.column_name = column_name


def _pick(tables: list[TableMetadata], ref: TableRef) -> TableMetadata | None:
    lowered = ref.table_name.lower()
    matches = [
        t
        for t in tables
        if t.table_name.lower() == lowered
        and (ref.schema_name is None or t.schema_name == ref.schema_name)
    ]
    return matches[0] if len(matches) == 1 else None


class JoinService:
    """Suggests join keys between tables and remembers confirmed joins.

    Suggestions are advisory: any failure to read live metadata yields an
    empty list rather than an error.
    """

    def __init__(self, session: Session, driver: SourceDriver | None = None) -> None:
        settings = get_settings()
        self.session = session
        self.sources = DataSourceRepository(session)
        self.repo = JoinCatalogRepository(session)
        self.reader = SchemaCatalogReader(driver or AdapterSourceDriver(session))
        self.generator = JoinCandidateGenerator(
            catalog_lookup=self._catalog_lookup,
            min_confidence=settings.join_min_confidence,
            max_suggestions=settings.join_max_suggestions,
        )

    def _catalog_lookup(
        self,
        left: TableMetadata,
        right: TableMetadata,
    ) -> list[JoinCatalogEntry]:
        return self.repo.list_for_tables(
            left.data_source_id,
            left.table_name,
            right.data_source_id,
            right.table_name,
        )

    async def _load_tables(self, refs: list[TableRef]) -> list[TableMetadata | None]:
        source_ids = sorted({ref.data_source_id for ref in refs if ref.data_source_id is not None})
        introspected = await asyncio.gather(
            *(self.reader.introspect_or_empty(source_id) for source_id in source_ids)
        )
        by_source = dict(zip(source_ids, introspected, strict=True))
        return [
            _pick(by_source[ref.data_source_id], ref) if ref.data_source_id is not None else None
            for ref in refs
        ]

    def suggestions(self, left_ref: TableRef, right_ref: TableRef) -> list[JoinSuggestion]:
        """Ranked join-key suggestions between two tables.

        Args:
            left_ref: Left table; ``data_source_id`` must be set.
            right_ref: Right table; ``data_source_id`` must be set.

        Returns:
            Suggestions, or an empty list when either table cannot be read.
        """
        left, right = asyncio.run(self._load_tables([left_ref, right_ref]))
        if left is None or right is None:
            logger.info(
                f"No metadata for {left_ref.table_name!r} or {right_ref.table_name!r}; "
                "returning no suggestions"
            )
            return []
        return self.generator.get_combined_suggestions(left, right)

    def _resolve_side(self, side: JoinSideRef) -> tuple[JoinSideRef, str | None]:
        """Spell a join side as introspected and fingerprint its table.

        Table and column lookups ignore case, so the stored side takes the
        source's own spelling. An unreachable side is kept as given.
        """
        try:
            table = asyncio.run(self.reader.get_table(side.data_source_id, side.table_name))
        except AdapterError as e:
            logger.warning(f"Saving join without fingerprint for {side.table_name!r}: {e}")
            return side, None
        if table is None:
            raise TableNotFoundError(side.data_source_id, side.table_name)
        column = table.get_column(side.column_name)
        if column is None:
            raise TableNotFoundError(side.data_source_id, side.table_name, side.column_name)
        resolved = JoinSideRef(
            data_source_id=side.data_source_id,
            table_name=table.table_name,
            column_name=column.column_name,
        )
        return resolved, generate_table_hash(table)

    def save_join(self, definition: JoinDefinition) -> JoinCatalogEntry:
        """Record a confirmed join in the catalog.

        The current fingerprints of both tables are stored with the entry so
        later structure changes invalidate it. A source that cannot be reached
        right now is recorded without a fingerprint.

        Raises:
            TableNotFoundError: If a data source, table or column does not exist.
        """
        for side in (definition.left, definition.right):
            if self.sources.get_by_id(side.data_source_id) is None:
                raise TableNotFoundError(side.data_source_id, side.table_name)

        left, left_hash = self._resolve_side(definition.left)
        right, right_hash = self._resolve_side(definition.right)
        resolved = definition.model_copy(update={"left": left, "right": right})
        entry = self.repo.save_join_to_catalog(resolved, left_hash, right_hash)
        logger.info(f"Saved join {entry!r}")
        return entry

    def list_joins(self, data_source_id: int | None = None) -> list[JoinCatalogEntry]:
        return self.repo.list_all(data_source_id)
