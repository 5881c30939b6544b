"""DataSource SQLAlchemy model."""

from typing import Any

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from crossmodel.core.models.base import Base, TimestampMixin


class DataSource(Base, TimestampMixin):
    """A connected system (database, document store, flat files) exposed as tables.

    Join catalog entries reference sources with ``ON DELETE CASCADE``; the
    source service also purges them explicitly so the cascade holds on
    SQLite connections without foreign key enforcement.
    """

    __tablename__ = "data_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    connection_info: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<DataSource(name={self.name!r}, type={self.source_type!r})>"
