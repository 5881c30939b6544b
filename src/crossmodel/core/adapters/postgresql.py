"""PostgreSQL adapter."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.adapters.exceptions import (
    AdapterAuthenticationError,
    AdapterConnectionError,
    AdapterQueryError,
)
from crossmodel.core.adapters.registry import AdapterRegistry
from crossmodel.core.adapters.schemas import PostgreSQLConfig

if TYPE_CHECKING:
    from crossmodel.core.query.plan import NativeQuery

logger = logging.getLogger(__name__)


@AdapterRegistry.register(
    source_type="postgresql",
    display_name="PostgreSQL",
    config_schema=PostgreSQLConfig,
)
class PostgreSQLAdapter(SourceAdapter):
    """Adapter for PostgreSQL databases.

    Supports:
    - Standard PostgreSQL metadata via information_schema and pg_catalog
    - TABLE and VIEW objects
    - Column data types including length and precision
    - Foreign key relationship extraction for join suggestions
    """

    SUPPORTED_OBJECT_TYPES = ["TABLE", "VIEW"]
    DIALECT = "postgresql"

    def __init__(self, config: PostgreSQLConfig) -> None:
        super().__init__(config)
        self.config: PostgreSQLConfig = config
        self._connection: Any = None

    async def connect(self) -> None:
        """Establish connection to PostgreSQL database."""
        try:
            import psycopg
        except ImportError as e:
            raise AdapterConnectionError(
                "psycopg package required. "
                "Install with: pip install crossmodel[postgresql] or pip install psycopg[binary]",
                source_type="postgresql",
            ) from e

        try:
            def _connect() -> Any:
                return psycopg.connect(
                    host=self.config.host,
                    port=self.config.port,
                    dbname=self.config.database,
                    user=self.config.username,
                    password=self.config.password.get_secret_value(),
                    sslmode=self.config.ssl_mode.value,
                    connect_timeout=self.config.connect_timeout,
                    autocommit=True,
                )

            loop = asyncio.get_running_loop()
            self._connection = await loop.run_in_executor(None, _connect)

        except Exception as e:
            error_msg = str(e).lower()
            if "password" in error_msg or "authentication" in error_msg:
                raise AdapterAuthenticationError(
                    f"Authentication failed: {e}",
                    source_type="postgresql",
                ) from e
            raise AdapterConnectionError(
                f"Failed to connect to PostgreSQL at {self.config.host}:{self.config.port}: {e}",
                source_type="postgresql",
            ) from e

    async def disconnect(self) -> None:
        """Close the PostgreSQL connection."""
        if self._connection is not None:
            try:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._connection.close)
            finally:
                self._connection = None

    async def test_connection(self) -> bool:
        """Test connection by running a simple query."""
        try:
            await self._fetch("SELECT 1 AS test")
            return True
        except AdapterQueryError:
            return False

    async def _fetch(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a SQL statement with pyformat parameters and return rows as dicts."""
        if self._connection is None:
            raise AdapterConnectionError(
                "Not connected. Call connect() first.",
                source_type="postgresql",
            )

        def _execute() -> list[dict[str, Any]]:
            with self._connection.cursor() as cursor:
                cursor.execute(sql, params or None)
                if cursor.description is None:
                    return []
                columns = [desc[0] for desc in cursor.description]
                rows = cursor.fetchall()
                return [dict(zip(columns, row, strict=True)) for row in rows]

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, _execute)
        except Exception as e:
            raise AdapterQueryError(
                f"Query execution failed: {e}",
                query=sql,
                source_type="postgresql",
            ) from e

    async def execute_query(self, query: "NativeQuery") -> list[dict[str, Any]]:
        """Execute a compiled PostgreSQL query."""
        if query.text is None:
            raise AdapterQueryError(
                "PostgreSQL sources only run SQL queries",
                source_type="postgresql",
            )
        logger.debug(f"Executing on postgresql: {query.text}")
        return await self._fetch(query.text, query.params)

    def _schema_filter(self, column: str) -> tuple[str, dict[str, Any]]:
        """Build a SQL condition and parameters restricting schemas."""
        conditions = []
        params: dict[str, Any] = {}
        if self.config.exclude_schemas:
            conditions.append(f"{column} <> ALL(%(excluded_schemas)s)")
            params["excluded_schemas"] = list(self.config.exclude_schemas)
        if self.config.schema_filter:
            conditions.append(f"{column} ~ %(schema_pattern)s")
            params["schema_pattern"] = self.config.schema_filter
        if conditions:
            return " AND " + " AND ".join(conditions), params
        return "", params

    def _normalize_object_type(self, pg_type: str) -> str:
        """Map PostgreSQL object types to standard types."""
        return "TABLE" if pg_type == "BASE TABLE" else pg_type

    async def get_objects(self) -> list[dict[str, Any]]:
        """Fetch tables and views from information_schema."""
        schema_filter, params = self._schema_filter("table_schema")
        query = f"""
            SELECT
                table_schema AS schema_name,
                table_name AS object_name,
                table_type AS object_type
            FROM information_schema.tables
            WHERE table_type IN ('BASE TABLE', 'VIEW')
            {schema_filter}
            ORDER BY table_schema, table_name
        """
        rows = await self._fetch(query, params)
        return [
            {
                "schema_name": row["schema_name"],
                "object_name": row["object_name"],
                "object_type": self._normalize_object_type(row["object_type"]),
            }
            for row in rows
        ]

    async def get_columns(
        self,
        objects: list[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        """Fetch column metadata for specified objects.

        Args:
            objects: List of (schema_name, object_name) tuples.

        Returns:
            List of column metadata dicts.
        """
        if not objects:
            return []

        params: dict[str, Any] = {}
        object_filters = []
        for i, (schema, name) in enumerate(objects):
            object_filters.append(
                f"(c.table_schema = %(schema_{i})s AND c.table_name = %(table_{i})s)"
            )
            params[f"schema_{i}"] = schema
            params[f"table_{i}"] = name

        query = f"""
            SELECT
                c.table_schema AS schema_name,
                c.table_name AS object_name,
                c.column_name,
                c.ordinal_position AS position,
                c.data_type,
                c.udt_name,
                c.character_maximum_length,
                c.numeric_precision,
                c.numeric_scale
            FROM information_schema.columns c
            WHERE {" OR ".join(object_filters)}
            ORDER BY c.table_schema, c.table_name, c.ordinal_position
        """

        rows = await self._fetch(query, params)

        return [
            {
                "schema_name": row["schema_name"],
                "object_name": row["object_name"],
                "column_name": row["column_name"],
                "position": row["position"],
                "data_type": self._format_data_type(row),
                "max_length": row.get("character_maximum_length"),
            }
            for row in rows
        ]

    def _format_data_type(self, row: dict[str, Any]) -> str:
        """Format the full data type string including precision/length."""
        base_type = row["data_type"]
        udt_name = row.get("udt_name", "")

        # Use udt_name for user-defined types and arrays
        if base_type == "USER-DEFINED":
            base_type = udt_name
        elif base_type == "ARRAY":
            base_type = f"{udt_name}[]"

        if row.get("character_maximum_length"):
            return f"{base_type}({row['character_maximum_length']})"

        if row.get("numeric_precision") and base_type in ("numeric", "decimal"):
            if row.get("numeric_scale"):
                return f"{base_type}({row['numeric_precision']},{row['numeric_scale']})"
            return f"{base_type}({row['numeric_precision']})"

        return base_type

    async def get_foreign_keys(self) -> list[dict[str, Any]]:
        """Extract foreign key relationships from pg_catalog.

        Returns:
            List of foreign key relationships with source and target info.
        """
        schema_filter, params = self._schema_filter("src_ns.nspname")

        query = f"""
            SELECT
                src_ns.nspname AS source_schema,
                src_tbl.relname AS source_table,
                src_att.attname AS source_column,
                tgt_ns.nspname AS target_schema,
                tgt_tbl.relname AS target_table,
                tgt_att.attname AS target_column
            FROM pg_constraint tc
            JOIN pg_class src_tbl ON tc.conrelid = src_tbl.oid
            JOIN pg_namespace src_ns ON src_tbl.relnamespace = src_ns.oid
            JOIN pg_class tgt_tbl ON tc.confrelid = tgt_tbl.oid
            JOIN pg_namespace tgt_ns ON tgt_tbl.relnamespace = tgt_ns.oid
            CROSS JOIN LATERAL unnest(tc.conkey, tc.confkey) AS k(src_attnum, tgt_attnum)
            JOIN pg_attribute src_att ON src_att.attrelid = src_tbl.oid
                AND src_att.attnum = k.src_attnum
            JOIN pg_attribute tgt_att ON tgt_att.attrelid = tgt_tbl.oid
                AND tgt_att.attnum = k.tgt_attnum
            WHERE tc.contype = 'f'
            {schema_filter}
            ORDER BY src_ns.nspname, src_tbl.relname
        """

        return await self._fetch(query, params)
