"""Base adapter interface for data sources."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from crossmodel.core.query.plan import NativeQuery


class SourceAdapter(ABC):
    """Abstract base class for data source adapters.

    Adapters provide a uniform interface for interacting with different
    data sources (PostgreSQL, SQLite, CSV files, MongoDB).

    All adapters must implement async methods for connection management,
    metadata retrieval and native query execution. The async interface lets
    the execution coordinator fetch from several sources concurrently.
    """

    # Class-level constants - override in subclasses
    SUPPORTED_OBJECT_TYPES: ClassVar[list[str]] = []
    DIALECT: ClassVar[str] = "postgresql"

    def __init__(self, config: BaseModel) -> None:
        """Initialize adapter with validated configuration.

        Args:
            config: Pydantic model with connection configuration.
        """
        self.config = config
        self._connection: Any = None

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the data source.

        Raises:
            AdapterConnectionError: If connection cannot be established.
            AdapterAuthenticationError: If authentication fails.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection and release resources."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if the connection is valid.

        Returns:
            True if connection is successful, False otherwise.
        """
        pass

    @abstractmethod
    async def get_objects(self) -> list[dict[str, Any]]:
        """Fetch metadata for tables, views, collections or files.

        Returns:
            List of dicts with keys:
                - schema_name: str
                - object_name: str
                - object_type: str (TABLE, VIEW, COLLECTION, FILE)
        """
        pass

    @abstractmethod
    async def get_columns(
        self,
        objects: list[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        """Fetch column metadata for specified objects.

        Args:
            objects: List of (schema_name, object_name) tuples.

        Returns:
            List of dicts with keys:
                - schema_name: str
                - object_name: str
                - column_name: str
                - position: int
                - data_type: str (native type name)
                - max_length: int | None
        """
        pass

    async def get_foreign_keys(self) -> list[dict[str, Any]]:
        """Extract declared foreign key relationships.

        Sources without declared relationships return an empty list.

        Returns:
            List of dicts with keys source_schema, source_table, source_column,
            target_schema, target_table, target_column.
        """
        return []

    @abstractmethod
    async def execute_query(self, query: "NativeQuery") -> list[dict[str, Any]]:
        """Execute a compiled native query.

        Args:
            query: Native query produced by the query compiler for this
                adapter's dialect.

        Returns:
            List of result rows as dicts keyed by the query's field names.

        Raises:
            AdapterQueryError: If query execution fails.
        """
        pass

    async def __aenter__(self) -> "SourceAdapter":
        """Async context manager entry - establish connection."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit - close connection."""
        await self.disconnect()
