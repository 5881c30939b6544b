"""Declarative, source-agnostic query descriptors."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crossmodel.core.models.join_catalog import JoinType
from crossmodel.core.models.metadata import ColumnMetadata
from crossmodel.core.query.expressions import Expression

JoinOperator = Literal["=", "!=", "<", ">", "<=", ">="]
FilterOperator = Literal["=", "!=", "<", ">", "<=", ">=", "IN", "NOT IN"]
AggregateFunction = Literal["SUM", "AVG", "COUNT", "MIN", "MAX"]


class Logic(str, Enum):
    """Connective joining a condition to the ones before it."""

    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class TableRef(BaseModel):
    """A table used by a query, optionally pinned to a data source and aliased."""

    model_config = ConfigDict(frozen=True)

    table_name: str
    schema_name: str | None = None
    data_source_id: int | None = None
    alias: str | None = None

    @property
    def ref_name(self) -> str:
        """Name other parts of the query use to refer to this table."""
        return self.alias or self.table_name


class JoinSide(BaseModel):
    """One side of a join condition."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    table: str
    column: str
    schema_name: str | None = Field(None, alias="schema")
    alias: str | None = None
    data_source_id: int | None = None

    def table_ref(self) -> TableRef:
        return TableRef(
            table_name=self.table,
            schema_name=self.schema_name,
            data_source_id=self.data_source_id,
            alias=self.alias,
        )

    @property
    def ref_name(self) -> str:
        return self.alias or self.table


class AdditionalJoinCondition(BaseModel):
    """An extra comparison attached to a join.

    Column names are resolved against the join's left and right tables
    respectively unless qualified as ``table_ref.column``.
    """

    model_config = ConfigDict(frozen=True)

    logic: Logic = Logic.AND
    left_column: str
    operator: JoinOperator = "="
    right_column: str


class JoinCondition(BaseModel):
    """A join between two tables of the query."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    left: JoinSide
    right: JoinSide
    join_type: JoinType = JoinType.INNER
    operator: JoinOperator = "="
    additional_conditions: list[AdditionalJoinCondition] = Field(default_factory=list)
    is_auto_detected: bool = False


class WhereClause(BaseModel):
    """A filter on a table column.

    Clauses are combined left to right using each clause's ``logic``; AND binds
    tighter than OR. The first clause's logic is ignored.
    """

    model_config = ConfigDict(frozen=True)

    column: str
    operator: FilterOperator = "="
    value: Any = None
    logic: Logic = Logic.AND

    @model_validator(mode="after")
    def _check_value(self) -> "WhereClause":
        if self.operator in ("IN", "NOT IN") and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"{self.operator} requires a list value")
        return self


class OrderBy(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC


class Aggregate(BaseModel):
    """An aggregate over a column; ``COUNT`` also accepts ``*``."""

    model_config = ConfigDict(frozen=True)

    function: AggregateFunction
    column: str
    alias: str | None = None

    @property
    def label(self) -> str:
        return self.alias or f"{self.function}({self.column})"


class CalculatedColumn(BaseModel):
    """A derived output column computed from an expression tree."""

    model_config = ConfigDict(frozen=True)

    column_name: str
    expression: Expression


class QueryOptions(BaseModel):
    """Filtering, grouping, ordering and paging. ``-1`` leaves offset/limit unset."""

    model_config = ConfigDict(frozen=True)

    where: list[WhereClause] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    aggregates: list[Aggregate] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    offset: int = Field(-1, ge=-1)
    limit: int = Field(-1, ge=-1)


class QueryDescriptor(BaseModel):
    """A source-agnostic description of a query over one or more data sources.

    Only columns with ``is_selected`` set are projected. Tables are introduced
    by ``root_table``, by join sides and by ``table_aliases``.
    """

    model_config = ConfigDict(frozen=True)

    root_table: TableRef
    columns: list[ColumnMetadata] = Field(default_factory=list)
    query_options: QueryOptions = Field(default_factory=QueryOptions)
    calculated_columns: list[CalculatedColumn] = Field(default_factory=list)
    join_conditions: list[JoinCondition] = Field(default_factory=list)
    table_aliases: dict[str, TableRef] = Field(default_factory=dict)

    @property
    def selected_columns(self) -> list[ColumnMetadata]:
        return [column for column in self.columns if column.is_selected]
