"""Repository for DataSource operations."""

from typing import Any

from sqlalchemy import select

from crossmodel.core.models import DataSource
from crossmodel.core.repositories.base import BaseRepository


class DataSourceRepository(BaseRepository[DataSource]):
    """Lookups and creation of configured data sources."""

    model = DataSource

    def get_by_name(self, name: str) -> DataSource | None:
        """Get a data source by its unique name.

        Args:
            name: The unique name of the data source.

        Returns:
            DataSource instance or None if not found.
        """
        stmt = select(DataSource).where(DataSource.name == name)
        return self.session.scalar(stmt)

    def get_active(self) -> list[DataSource]:
        stmt = (
            select(DataSource)
            .where(DataSource.is_active == True)  # noqa: E712
            .order_by(DataSource.name)
        )
        return list(self.session.scalars(stmt))

    def get_by_ids(self, ids: list[int]) -> list[DataSource]:
        """Fetch several sources at once, in id order."""
        if not ids:
            return []
        stmt = select(DataSource).where(DataSource.id.in_(ids)).order_by(DataSource.id)
        return list(self.session.scalars(stmt))

    def create(
        self,
        name: str,
        source_type: str,
        connection_info: dict[str, Any],
        display_name: str | None = None,
    ) -> DataSource:
        """Create a new data source.

        Args:
            name: Unique name for the source.
            source_type: Registered adapter type (e.g., 'postgresql').
            connection_info: Validated adapter configuration.
            display_name: Human-readable display name.

        Returns:
            The created DataSource instance.
        """
        source = DataSource(
            name=name,
            display_name=display_name,
            source_type=source_type,
            connection_info=connection_info,
        )
        self.add(source)
        return source

    def exists(self, name: str) -> bool:
        return self.get_by_name(name) is not None
