"""Tests for the MongoDB adapter."""

import asyncio
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from crossmodel.core.adapters import (
    AdapterConnectionError,
    AdapterQueryError,
    MongoDBAdapter,
    MongoDBConfig,
)
from crossmodel.core.adapters.mongodb import bson_type_name, infer_fields, union_types
from crossmodel.core.query.plan import NativeQuery


def _adapter(client: MagicMock | None = None, **kwargs) -> MongoDBAdapter:
    adapter = MongoDBAdapter(
        MongoDBConfig(uri="mongodb://localhost:27017", database="shop", **kwargs)
    )
    adapter._connection = client
    return adapter


def _client(collections=None, documents=None) -> tuple[MagicMock, MagicMock]:
    client = MagicMock()
    db = client.__getitem__.return_value
    db.list_collection_names.return_value = collections or []
    db.__getitem__.return_value.aggregate.return_value = documents or []
    return client, db


class TestSchemaInference:
    """Test cases for BSON type naming and field inference."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            (True, "bool"),
            (7, "int"),
            (2**40, "long"),
            (1.5, "double"),
            ("x", "string"),
            (datetime(2024, 1, 1), "date"),
            ({"a": 1}, "object"),
            ([1], "array"),
        ],
    )
    def test_bson_type_name(self, value, expected):
        assert bson_type_name(value) == expected

    @pytest.mark.parametrize(
        "types,expected",
        [
            (set(), "null"),
            ({"string"}, "string"),
            ({"int", "long"}, "long"),
            ({"int", "double"}, "double"),
            ({"int", "string"}, "mixed"),
        ],
    )
    def test_union_types(self, types, expected):
        assert union_types(types) == expected

    def test_infer_fields(self):
        documents = [
            {"name": "Alice", "_id": "a1", "age": 30},
            {"_id": "a2", "age": 31.5, "email": None},
        ]

        assert infer_fields(documents) == [
            ("_id", "string"),
            ("name", "string"),
            ("age", "double"),
            ("email", "null"),
        ]


class TestMongoDBAdapter:
    """Test cases for MongoDBAdapter against a mocked client."""

    def test_not_connected_raises(self):
        with pytest.raises(AdapterConnectionError, match="Not connected"):
            asyncio.run(_adapter().get_objects())

    def test_get_objects_skips_system_collections(self):
        client, _ = _client(collections=["orders", "system.views", "customers"])

        objects = asyncio.run(_adapter(client).get_objects())

        assert [o["object_name"] for o in objects] == ["customers", "orders"]
        assert objects[0]["schema_name"] == "shop"
        assert objects[0]["object_type"] == "COLLECTION"

    def test_get_columns_samples_documents(self):
        client, db = _client(documents=[{"_id": 1, "total": 9.5}])

        columns = asyncio.run(_adapter(client, sample_size=25).get_columns([("shop", "orders")]))

        db.__getitem__.assert_called_with("orders")
        db.__getitem__.return_value.aggregate.assert_called_with([{"$sample": {"size": 25}}])
        assert [(c["column_name"], c["data_type"], c["position"]) for c in columns] == [
            ("_id", "int", 1),
            ("total", "double", 2),
        ]

    def test_execute_query(self):
        client, db = _client(documents=[{"_c0": "Alice", "_c1": Decimal("1.5")}, {"_c0": "Bob"}])
        pipeline = [{"$project": {"_id": 0, "_c0": "$name", "_c1": "$score"}}]
        query = NativeQuery(
            dialect="mongodb",
            collection="customers",
            pipeline=pipeline,
            fields=["_c0", "_c1"],
        )

        rows = asyncio.run(_adapter(client).execute_query(query))

        db.__getitem__.return_value.aggregate.assert_called_once_with(pipeline)
        assert rows == [{"_c0": "Alice", "_c1": Decimal("1.5")}, {"_c0": "Bob", "_c1": None}]

    def test_execute_sql_rejected(self):
        client, _ = _client()
        query = NativeQuery(dialect="sqlite", text="SELECT 1")

        with pytest.raises(AdapterQueryError, match="aggregation pipelines"):
            asyncio.run(_adapter(client).execute_query(query))

    def test_driver_errors_wrapped(self):
        client, db = _client()
        db.list_collection_names.side_effect = RuntimeError("server went away")

        with pytest.raises(AdapterQueryError, match="server went away"):
            asyncio.run(_adapter(client).get_objects())
