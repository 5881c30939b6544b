"""Generic repository over a single ORM model."""

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from crossmodel.core.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Shared lookups and unit-of-work helpers.

    Subclasses set ``model`` to the mapped class they manage. Repositories
    never commit; the caller's session scope does.
    """

    model: type[ModelT]

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_id(self, id: int) -> ModelT | None:
        """Get a record by primary key, or None."""
        return self.session.get(self.model, id)

    def get_all(self, limit: int | None = None, offset: int = 0) -> list[ModelT]:
        """List records in primary key order.

        Args:
            limit: Maximum number of records to return.
            offset: Number of records to skip.

        Returns:
            List of model instances.
        """
        stmt = select(self.model).order_by(*self.model.__table__.primary_key.columns).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def add(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        self.session.delete(entity)

    def count(self) -> int:
        return self.session.scalar(select(func.count()).select_from(self.model)) or 0

    def flush(self) -> None:
        """Flush pending changes so generated keys are available."""
        self.session.flush()
