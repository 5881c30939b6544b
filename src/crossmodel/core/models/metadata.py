"""Normalized table and column metadata produced by introspection."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from crossmodel.core.query.expressions import Transform


class TableType(str, Enum):
    """Kinds of tabular objects a data source can expose."""

    TABLE = "TABLE"
    VIEW = "VIEW"
    COLLECTION = "COLLECTION"
    FILE = "FILE"


class TypeTag(str, Enum):
    """Normalized column type families used for join compatibility and merging."""

    INTEGER = "integer"
    NUMERIC = "numeric"
    STRING = "string"
    DATE = "date"
    BOOLEAN = "boolean"
    JSON = "json"
    UNKNOWN = "unknown"

    @property
    def is_number(self) -> bool:
        return self in (TypeTag.INTEGER, TypeTag.NUMERIC)


class ForeignKeyReference(BaseModel):
    """A declared foreign key from a local column to a column of another table."""

    model_config = ConfigDict(frozen=True)

    local_schema: str
    local_table: str
    local_column: str
    foreign_schema: str
    foreign_table: str
    foreign_column: str


class ColumnMetadata(BaseModel):
    """A single column of a table, with its normalized type tag."""

    model_config = ConfigDict(frozen=True)

    column_name: str
    data_type: str = ""
    type_tag: TypeTag = TypeTag.UNKNOWN
    max_length: int | None = None
    ordinal_position: int = 0
    schema_name: str = ""
    table_name: str = ""
    alias_name: str | None = None
    is_selected: bool = False
    reference: ForeignKeyReference | None = None
    data_source_id: int | None = None
    data_source_type: str | None = None
    table_alias: str | None = None
    transform: Transform | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        """Label shown to users: the alias when set, otherwise table.column."""
        if self.alias_name:
            return self.alias_name
        return f"{self.table_name}.{self.column_name}"


class TableMetadata(BaseModel):
    """A table, view, collection or file exposed by a data source.

    Instances are produced fresh on every introspection and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    data_source_id: int
    schema_name: str
    table_name: str
    logical_name: str | None = None
    table_type: TableType = TableType.TABLE
    columns: list[ColumnMetadata] = Field(default_factory=list)

    def get_column(self, column_name: str) -> ColumnMetadata | None:
        """Find a column by name, case-insensitively.

        Args:
            column_name: Column to look up.

        Returns:
            The matching ColumnMetadata or None.
        """
        lowered = column_name.lower()
        for column in self.columns:
            if column.column_name.lower() == lowered:
                return column
        return None
