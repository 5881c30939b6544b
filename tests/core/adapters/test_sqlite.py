"""Tests for the SQLite adapter."""

import asyncio
from pathlib import Path

import pytest

from crossmodel.core.adapters import (
    AdapterConnectionError,
    AdapterQueryError,
    SQLiteAdapter,
    SQLiteConfig,
)
from crossmodel.core.query.plan import NativeQuery


def _adapter(path: Path | str) -> SQLiteAdapter:
    return SQLiteAdapter(SQLiteConfig(path=str(path)))


async def _with_adapter(adapter: SQLiteAdapter, work):
    async with adapter:
        return await work(adapter)


class TestSQLiteAdapter:
    """Test cases for SQLiteAdapter."""

    def test_missing_file_raises(self, tmp_path: Path):
        adapter = _adapter(tmp_path / "missing.db")

        with pytest.raises(AdapterConnectionError, match="SQLite database not found"):
            asyncio.run(adapter.connect())

        # Connecting must not create the file
        assert not (tmp_path / "missing.db").exists()

    def test_test_connection(self, shop_db: Path):
        assert asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.test_connection()))

    def test_not_connected_raises(self, shop_db: Path):
        with pytest.raises(AdapterConnectionError, match="Not connected"):
            asyncio.run(_adapter(shop_db).get_objects())

    def test_get_objects(self, shop_db: Path):
        objects = asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.get_objects()))

        assert objects == [
            {"schema_name": "main", "object_name": "customers", "object_type": "TABLE"},
            {"schema_name": "main", "object_name": "orders", "object_type": "TABLE"},
        ]

    def test_get_objects_includes_views(self, shop_db: Path):
        import sqlite3

        conn = sqlite3.connect(shop_db)
        conn.execute("CREATE VIEW paid_orders AS SELECT * FROM orders WHERE status = 'paid'")
        conn.commit()
        conn.close()

        objects = asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.get_objects()))

        assert {o["object_name"]: o["object_type"] for o in objects}["paid_orders"] == "VIEW"

    def test_get_columns(self, shop_db: Path):
        columns = asyncio.run(
            _with_adapter(_adapter(shop_db), lambda a: a.get_columns([("main", "customers")]))
        )

        assert [c["column_name"] for c in columns] == ["id", "name", "country"]
        assert [c["position"] for c in columns] == [1, 2, 3]
        by_name = {c["column_name"]: c for c in columns}
        assert by_name["id"]["data_type"] == "INTEGER"
        assert by_name["name"]["data_type"] == "VARCHAR(100)"
        assert by_name["name"]["max_length"] == 100
        assert by_name["country"]["max_length"] is None

    def test_get_columns_empty(self, shop_db: Path):
        assert asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.get_columns([]))) == []

    def test_get_foreign_keys(self, shop_db: Path):
        foreign_keys = asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.get_foreign_keys()))

        assert foreign_keys == [
            {
                "source_schema": "main",
                "source_table": "orders",
                "source_column": "customer_id",
                "target_schema": "main",
                "target_table": "customers",
                "target_column": "id",
            }
        ]

    def test_execute_query(self, shop_db: Path):
        query = NativeQuery(
            dialect="sqlite",
            text="SELECT name AS _c0 FROM customers WHERE country = :country ORDER BY id",
            params={"country": "US"},
            fields=["_c0"],
        )

        rows = asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.execute_query(query)))

        assert rows == [{"_c0": "Alice"}, {"_c0": "Carol"}]

    def test_execute_query_error(self, shop_db: Path):
        query = NativeQuery(dialect="sqlite", text="SELECT nope FROM customers")

        with pytest.raises(AdapterQueryError) as exc_info:
            asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.execute_query(query)))

        assert exc_info.value.query == "SELECT nope FROM customers"

    def test_execute_pipeline_rejected(self, shop_db: Path):
        query = NativeQuery(dialect="mongodb", collection="customers", pipeline=[])

        with pytest.raises(AdapterQueryError, match="only run SQL"):
            asyncio.run(_with_adapter(_adapter(shop_db), lambda a: a.execute_query(query)))
