"""MongoDB adapter."""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from crossmodel.config import get_settings
from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.adapters.exceptions import (
    AdapterAuthenticationError,
    AdapterConnectionError,
    AdapterQueryError,
)
from crossmodel.core.adapters.registry import AdapterRegistry
from crossmodel.core.adapters.schemas import MongoDBConfig

if TYPE_CHECKING:
    from crossmodel.core.query.plan import NativeQuery

logger = logging.getLogger(__name__)

_NUMERIC_TYPES = {"int", "long", "double", "decimal"}


def bson_type_name(value: Any) -> str | None:
    """Name the BSON type of a decoded value, or None for nulls."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int" if -(2**31) <= value < 2**31 else "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    type_name = type(value).__name__
    if type_name == "ObjectId":
        return "objectId"
    if type_name == "Decimal128":
        return "decimal"
    return type_name.lower()


def union_types(type_names: set[str]) -> str:
    """Combine the types seen for one field across sampled documents.

    Args:
        type_names: BSON type names observed (nulls excluded).

    Returns:
        A single type name; "mixed" when the observed types do not unify.
    """
    if not type_names:
        return "null"
    if len(type_names) == 1:
        return next(iter(type_names))
    if type_names <= {"int", "long"}:
        return "long"
    if type_names <= _NUMERIC_TYPES:
        return "double"
    return "mixed"


def infer_fields(documents: list[dict[str, Any]]) -> list[tuple[str, str]]:
    """Infer top-level fields and their unified types from sampled documents.

    Fields are ordered by first appearance, with ``_id`` first.

    Returns:
        List of (field_name, type_name) tuples.
    """
    seen: dict[str, set[str]] = {}
    for document in documents:
        for key, value in document.items():
            types = seen.setdefault(key, set())
            type_name = bson_type_name(value)
            if type_name is not None:
                types.add(type_name)

    ordered = sorted(seen, key=lambda name: name != "_id")
    return [(name, union_types(seen[name])) for name in ordered]


def to_plain(value: Any) -> Any:
    """Convert BSON-specific values into plain Python values."""
    type_name = type(value).__name__
    if type_name == "ObjectId":
        return str(value)
    if type_name == "Decimal128":
        return Decimal(str(value.to_decimal()))
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


@AdapterRegistry.register(
    source_type="mongodb",
    display_name="MongoDB",
    config_schema=MongoDBConfig,
)
class MongoDBAdapter(SourceAdapter):
    """Adapter for MongoDB document stores.

    Collections are exposed as tables in a schema named after the database.
    Fields are inferred from a random sample of documents; compiled queries
    are aggregation pipelines.
    """

    SUPPORTED_OBJECT_TYPES = ["COLLECTION"]
    DIALECT = "mongodb"

    def __init__(self, config: MongoDBConfig) -> None:
        super().__init__(config)
        self.config: MongoDBConfig = config
        self._connection: Any = None

    @property
    def sample_size(self) -> int:
        return self.config.sample_size or get_settings().document_sample_size

    async def connect(self) -> None:
        """Connect and ping the server."""
        try:
            import pymongo
            from pymongo.errors import OperationFailure
        except ImportError as e:
            raise AdapterConnectionError(
                "pymongo package required. "
                "Install with: pip install crossmodel[mongodb] or pip install pymongo",
                source_type="mongodb",
            ) from e

        def _connect() -> Any:
            client = pymongo.MongoClient(
                self.config.uri.get_secret_value(),
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            )
            client.admin.command("ping")
            return client

        try:
            loop = asyncio.get_running_loop()
            self._connection = await loop.run_in_executor(None, _connect)
        except OperationFailure as e:
            raise AdapterAuthenticationError(
                f"Authentication failed: {e}",
                source_type="mongodb",
            ) from e
        except Exception as e:
            raise AdapterConnectionError(
                f"Failed to connect to MongoDB: {e}",
                source_type="mongodb",
            ) from e

    async def disconnect(self) -> None:
        """Close the client."""
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None

    async def test_connection(self) -> bool:
        """Test connection by pinging the server."""
        try:
            await self._run(lambda db: db.command("ping"))
            return True
        except AdapterQueryError:
            return False

    async def _run(self, operation: Any, description: str = "operation") -> Any:
        if self._connection is None:
            raise AdapterConnectionError(
                "Not connected. Call connect() first.",
                source_type="mongodb",
            )
        database = self._connection[self.config.database]
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, operation, database)
        except Exception as e:
            raise AdapterQueryError(
                f"MongoDB {description} failed: {e}",
                query=description,
                source_type="mongodb",
            ) from e

    async def get_objects(self) -> list[dict[str, Any]]:
        """List collections, skipping system collections."""
        names = await self._run(
            lambda db: db.list_collection_names(),
            "list_collection_names",
        )
        return [
            {
                "schema_name": self.config.database,
                "object_name": name,
                "object_type": "COLLECTION",
            }
            for name in sorted(names)
            if not name.startswith("system.")
        ]

    async def get_columns(
        self,
        objects: list[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        """Infer fields of each collection from sampled documents."""
        results: list[dict[str, Any]] = []
        size = self.sample_size
        for schema_name, object_name in objects:
            documents = await self._run(
                lambda db, name=object_name: list(
                    db[name].aggregate([{"$sample": {"size": size}}])
                ),
                f"sampling of {object_name}",
            )
            for position, (field, type_name) in enumerate(infer_fields(documents), start=1):
                results.append({
                    "schema_name": schema_name,
                    "object_name": object_name,
                    "column_name": field,
                    "position": position,
                    "data_type": type_name,
                    "max_length": None,
                })
        return results

    async def execute_query(self, query: "NativeQuery") -> list[dict[str, Any]]:
        """Run a compiled aggregation pipeline."""
        if query.collection is None:
            raise AdapterQueryError(
                "MongoDB sources only run aggregation pipelines",
                source_type="mongodb",
            )
        logger.debug(f"Executing on mongodb: {query.describe()}")
        documents = await self._run(
            lambda db: list(db[query.collection].aggregate(query.pipeline)),
            f"aggregate on {query.collection}",
        )
        return [
            {field: to_plain(document.get(field)) for field in query.fields}
            for document in documents
        ]
