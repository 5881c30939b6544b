"""SQLite adapter."""

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.adapters.exceptions import (
    AdapterConnectionError,
    AdapterQueryError,
)
from crossmodel.core.adapters.registry import AdapterRegistry
from crossmodel.core.adapters.schemas import SQLiteConfig

if TYPE_CHECKING:
    from crossmodel.core.query.plan import NativeQuery

logger = logging.getLogger(__name__)

_LENGTH_PATTERN = re.compile(r"\((\d+)\)")


@AdapterRegistry.register(
    source_type="sqlite",
    display_name="SQLite",
    config_schema=SQLiteConfig,
)
class SQLiteAdapter(SourceAdapter):
    """Adapter for SQLite database files.

    Supports:
    - TABLE and VIEW objects from sqlite_master
    - Declared column types and lengths
    - Declared foreign keys
    """

    SUPPORTED_OBJECT_TYPES = ["TABLE", "VIEW"]
    DIALECT = "sqlite"
    SOURCE_TYPE = "sqlite"

    def __init__(self, config: SQLiteConfig) -> None:
        super().__init__(config)
        self.config: SQLiteConfig = config
        self._engine: Engine | None = None

    @property
    def schema_name(self) -> str:
        return self.config.schema_name

    def _create_engine(self) -> Engine:
        if self.config.path == ":memory:":
            return create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            f"sqlite:///{self.config.path}",
            connect_args={"check_same_thread": False},
        )

    async def connect(self) -> None:
        """Open the database file and verify it is readable."""
        if self.config.path != ":memory:" and not Path(self.config.path).exists():
            raise AdapterConnectionError(
                f"SQLite database not found: {self.config.path}",
                source_type=self.SOURCE_TYPE,
            )

        def _connect() -> Engine:
            engine = self._create_engine()
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return engine

        try:
            loop = asyncio.get_running_loop()
            self._engine = await loop.run_in_executor(None, _connect)
        except SQLAlchemyError as e:
            raise AdapterConnectionError(
                f"Failed to open SQLite database {self.config.path}: {e}",
                source_type=self.SOURCE_TYPE,
            ) from e

    async def disconnect(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is not None:
            try:
                self._engine.dispose()
            finally:
                self._engine = None

    async def test_connection(self) -> bool:
        """Test connection by running a simple query."""
        try:
            await self._fetch("SELECT 1 AS test")
            return True
        except AdapterQueryError:
            return False

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise AdapterConnectionError(
                "Not connected. Call connect() first.",
                source_type=self.SOURCE_TYPE,
            )
        return self._engine

    async def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        engine = self._require_engine()

        def _execute() -> list[dict[str, Any]]:
            with engine.connect() as conn:
                result = conn.exec_driver_sql(sql, params or {})
                if not result.returns_rows:
                    return []
                return [dict(row._mapping) for row in result]

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, _execute)
        except SQLAlchemyError as e:
            raise AdapterQueryError(
                f"Query execution failed: {e}",
                query=sql,
                source_type=self.SOURCE_TYPE,
            ) from e

    async def execute_query(self, query: "NativeQuery") -> list[dict[str, Any]]:
        """Execute a compiled SQLite query with named parameters."""
        if query.text is None:
            raise AdapterQueryError(
                f"{self.SOURCE_TYPE} sources only run SQL queries",
                source_type=self.SOURCE_TYPE,
            )
        logger.debug(f"Executing on {self.SOURCE_TYPE}: {query.text}")
        return await self._fetch(query.text, query.params)

    def _object_type(self, kind: str) -> str:
        return "VIEW" if kind == "view" else "TABLE"

    async def get_objects(self) -> list[dict[str, Any]]:
        """Fetch tables and views from sqlite_master."""
        rows = await self._fetch(
            "SELECT name, type FROM sqlite_master "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )
        return [
            {
                "schema_name": self.schema_name,
                "object_name": row["name"],
                "object_type": self._object_type(row["type"]),
            }
            for row in rows
        ]

    def _type_name(self, column: dict[str, Any]) -> str:
        """Render a reflected column type the way it was declared."""
        try:
            return column["type"].compile(dialect=self._require_engine().dialect)
        except CompileError:
            # Columns declared without a type reflect as NullType
            return ""

    async def get_columns(
        self,
        objects: list[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        """Fetch column metadata using SQLAlchemy reflection."""
        if not objects:
            return []
        engine = self._require_engine()

        def _reflect() -> list[dict[str, Any]]:
            inspector = inspect(engine)
            results: list[dict[str, Any]] = []
            for schema_name, object_name in objects:
                for position, column in enumerate(inspector.get_columns(object_name), start=1):
                    data_type = self._type_name(column)
                    match = _LENGTH_PATTERN.search(data_type)
                    results.append({
                        "schema_name": schema_name,
                        "object_name": object_name,
                        "column_name": column["name"],
                        "position": position,
                        "data_type": data_type,
                        "max_length": int(match.group(1)) if match else None,
                    })
            return results

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, _reflect)
        except SQLAlchemyError as e:
            raise AdapterQueryError(
                f"Failed to read column metadata: {e}",
                source_type=self.SOURCE_TYPE,
            ) from e

    async def get_foreign_keys(self) -> list[dict[str, Any]]:
        """Extract declared foreign keys for every table."""
        engine = self._require_engine()

        def _reflect() -> list[dict[str, Any]]:
            inspector = inspect(engine)
            results: list[dict[str, Any]] = []
            for table_name in inspector.get_table_names():
                for fk in inspector.get_foreign_keys(table_name):
                    pairs = zip(fk["constrained_columns"], fk["referred_columns"], strict=False)
                    for source_column, target_column in pairs:
                        results.append({
                            "source_schema": self.schema_name,
                            "source_table": table_name,
                            "source_column": source_column,
                            "target_schema": self.schema_name,
                            "target_table": fk["referred_table"],
                            "target_column": target_column,
                        })
            return results

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, _reflect)
        except SQLAlchemyError as e:
            raise AdapterQueryError(
                f"Failed to read foreign keys: {e}",
                source_type=self.SOURCE_TYPE,
            ) from e
