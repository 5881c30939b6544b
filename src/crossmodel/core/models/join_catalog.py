"""Join catalog models: remembered join keys between tables."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from crossmodel.core.models.base import Base, TimestampMixin


class JoinType(str, Enum):
    """Join types understood by the compiler and the merge engine."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"

    def mirrored(self) -> "JoinType":
        """Join type to use when the two sides are swapped."""
        if self is JoinType.LEFT:
            return JoinType.RIGHT
        if self is JoinType.RIGHT:
            return JoinType.LEFT
        return self


# =============================================================================
# SQLAlchemy Models
# =============================================================================


class JoinCatalogEntry(Base, TimestampMixin):
    """A join confirmed by a user, remembered to rank future suggestions.

    Entries are stored in canonical orientation: the side with the smaller
    (data_source_id, table_name, column_name) tuple is always ``left``, and the
    join type is mirrored when the sides are swapped. This makes A=B and B=A
    the same row.
    """

    __tablename__ = "join_catalog"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    left_data_source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("data_sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    left_table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    left_column_name: Mapped[str] = mapped_column(String(255), nullable=False)

    right_data_source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("data_sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    right_table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    right_column_name: Mapped[str] = mapped_column(String(255), nullable=False)

    join_type: Mapped[str] = mapped_column(String(10), nullable=False, default="INNER")
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Table fingerprints at the time the join was last confirmed
    left_schema_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    right_schema_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "left_data_source_id",
            "left_table_name",
            "left_column_name",
            "right_data_source_id",
            "right_table_name",
            "right_column_name",
            name="uq_join_catalog_pair",
        ),
        Index("ix_join_catalog_left_source", "left_data_source_id"),
        Index("ix_join_catalog_right_source", "right_data_source_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<JoinCatalogEntry({self.left_table_name}.{self.left_column_name} = "
            f"{self.right_table_name}.{self.right_column_name}, uses={self.usage_count})>"
        )


# =============================================================================
# Pydantic Schemas
# =============================================================================


class JoinSideRef(BaseModel):
    """One side of a catalog join: a column of a table in a data source."""

    data_source_id: int
    table_name: str
    column_name: str

    def sort_key(self) -> tuple[int, str, str]:
        return (self.data_source_id, self.table_name, self.column_name)


class JoinDefinition(BaseModel):
    """A confirmed join to record in the catalog."""

    left: JoinSideRef
    right: JoinSideRef
    join_type: JoinType = JoinType.INNER
    created_by_user_id: int | None = None

    def canonical(self) -> "JoinDefinition":
        """Return the definition in canonical orientation."""
        if self.right.sort_key() < self.left.sort_key():
            return JoinDefinition(
                left=self.right,
                right=self.left,
                join_type=self.join_type.mirrored(),
                created_by_user_id=self.created_by_user_id,
            )
        return self


class JoinCatalogEntryResponse(BaseModel):
    """Response schema for a join catalog entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    left_data_source_id: int
    left_table_name: str
    left_column_name: str
    right_data_source_id: int
    right_table_name: str
    right_column_name: str
    join_type: str
    usage_count: int
    created_by_user_id: int | None = None
    created_at: datetime
    updated_at: datetime


class SuggestionSource(str, Enum):
    """Where a join suggestion came from, in ranking order."""

    CATALOG = "catalog"
    FOREIGN_KEY = "foreign_key"
    HEURISTIC = "heuristic"


class JoinSuggestion(BaseModel):
    """A ranked, advisory join-key candidate between two tables."""

    left_data_source_id: int
    left_schema_name: str
    left_table_name: str
    left_column_name: str
    right_data_source_id: int
    right_schema_name: str
    right_table_name: str
    right_column_name: str
    suggested_join_type: JoinType = JoinType.INNER
    confidence: int = Field(..., ge=0, le=100)
    source: SuggestionSource
    reason: str
    usage_count: int = 0

    @property
    def is_cross_source(self) -> bool:
        return self.left_data_source_id != self.right_data_source_id
