"""Repository for the join catalog."""

import logging
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError

from crossmodel.core.models import JoinCatalogEntry, JoinDefinition
from crossmodel.core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class JoinCatalogRepository(BaseRepository[JoinCatalogEntry]):
    """Stores confirmed joins in canonical orientation.

    A join and its mirror image (A=B and B=A, LEFT and RIGHT swapped) map to
    the same row, and usage counts are only ever incremented in SQL so
    concurrent saves never lose an update.
    """

    model = JoinCatalogEntry

    def _pair_filter(self, definition: JoinDefinition):
        return and_(
            JoinCatalogEntry.left_data_source_id == definition.left.data_source_id,
            JoinCatalogEntry.left_table_name == definition.left.table_name,
            JoinCatalogEntry.left_column_name == definition.left.column_name,
            JoinCatalogEntry.right_data_source_id == definition.right.data_source_id,
            JoinCatalogEntry.right_table_name == definition.right.table_name,
            JoinCatalogEntry.right_column_name == definition.right.column_name,
        )

    def _increment(
        self,
        definition: JoinDefinition,
        left_hash: str | None,
        right_hash: str | None,
    ) -> int:
        stmt = (
            update(JoinCatalogEntry)
            .where(self._pair_filter(definition))
            .values(
                usage_count=JoinCatalogEntry.usage_count + 1,
                join_type=definition.join_type.value,
                left_schema_hash=left_hash,
                right_schema_hash=right_hash,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session="fetch")
        )
        return self.session.execute(stmt).rowcount

    def save_join_to_catalog(
        self,
        definition: JoinDefinition,
        left_hash: str | None = None,
        right_hash: str | None = None,
    ) -> JoinCatalogEntry:
        """Record a confirmed join, or bump its usage count if already known.

        Args:
            definition: The join, in any orientation.
            left_hash: Current fingerprint of the definition's left table.
            right_hash: Current fingerprint of the definition's right table.

        Returns:
            The stored entry.
        """
        canonical = definition.canonical()
        if canonical is not definition:
            left_hash, right_hash = right_hash, left_hash

        if self._increment(canonical, left_hash, right_hash) == 0:
            entry = JoinCatalogEntry(
                left_data_source_id=canonical.left.data_source_id,
                left_table_name=canonical.left.table_name,
                left_column_name=canonical.left.column_name,
                right_data_source_id=canonical.right.data_source_id,
                right_table_name=canonical.right.table_name,
                right_column_name=canonical.right.column_name,
                join_type=canonical.join_type.value,
                usage_count=1,
                created_by_user_id=canonical.created_by_user_id,
                left_schema_hash=left_hash,
                right_schema_hash=right_hash,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(entry)
            except IntegrityError:
                # Another writer inserted the same pair first
                logger.debug("Join catalog insert raced; incrementing instead")
                self._increment(canonical, left_hash, right_hash)

        entry = self.session.scalar(select(JoinCatalogEntry).where(self._pair_filter(canonical)))
        self.session.refresh(entry)
        return entry

    def list_for_tables(
        self,
        left_data_source_id: int,
        left_table_name: str,
        right_data_source_id: int,
        right_table_name: str,
    ) -> list[JoinCatalogEntry]:
        """Entries joining two tables in either orientation, most used first."""
        forward = and_(
            JoinCatalogEntry.left_data_source_id == left_data_source_id,
            JoinCatalogEntry.left_table_name == left_table_name,
            JoinCatalogEntry.right_data_source_id == right_data_source_id,
            JoinCatalogEntry.right_table_name == right_table_name,
        )
        backward = and_(
            JoinCatalogEntry.left_data_source_id == right_data_source_id,
            JoinCatalogEntry.left_table_name == right_table_name,
            JoinCatalogEntry.right_data_source_id == left_data_source_id,
            JoinCatalogEntry.right_table_name == left_table_name,
        )
        stmt = (
            select(JoinCatalogEntry)
            .where(or_(forward, backward))
            .order_by(
                JoinCatalogEntry.usage_count.desc(),
                JoinCatalogEntry.created_at.desc(),
                JoinCatalogEntry.id.desc(),
            )
        )
        return list(self.session.scalars(stmt))

    def list_all(self, data_source_id: int | None = None) -> list[JoinCatalogEntry]:
        """List entries, optionally only those touching one data source."""
        stmt = select(JoinCatalogEntry)
        if data_source_id is not None:
            stmt = stmt.where(
                or_(
                    JoinCatalogEntry.left_data_source_id == data_source_id,
                    JoinCatalogEntry.right_data_source_id == data_source_id,
                )
            )
        stmt = stmt.order_by(JoinCatalogEntry.usage_count.desc(), JoinCatalogEntry.id)
        return list(self.session.scalars(stmt))

    def delete_by_data_source(self, data_source_id: int) -> int:
        """Delete every entry referencing a data source.

        Returns:
            Number of entries deleted.
        """
        stmt = (
            delete(JoinCatalogEntry)
            .where(
                or_(
                    JoinCatalogEntry.left_data_source_id == data_source_id,
                    JoinCatalogEntry.right_data_source_id == data_source_id,
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        return self.session.execute(stmt).rowcount
