"""Service for managing data sources."""

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, SecretStr
from sqlalchemy.orm import Session

from crossmodel.core.adapters import AdapterConfigurationError, AdapterNotFoundError, AdapterRegistry
from crossmodel.core.catalog import SchemaCatalogReader, generate_hash_from_tables
from crossmodel.core.interfaces import SourceDriver
from crossmodel.core.models import (
    ConnectionTestResult,
    DataSource,
    SchemaHashResult,
    TableMetadata,
)
from crossmodel.core.repositories import DataSourceRepository, JoinCatalogRepository
from crossmodel.core.services.config_loader import load_source_config
from crossmodel.core.services.drivers import AdapterSourceDriver

logger = logging.getLogger(__name__)


class SourceServiceError(Exception):
    """Raised when a source service operation fails."""

    pass


class SourceNotFoundError(SourceServiceError):
    """Raised when a requested source does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Data source not found: {name!r}")
        self.name = name


class SourceExistsError(SourceServiceError):
    """Raised when trying to create a source that already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Data source already exists: {name!r}")
        self.name = name


def _storable(value: Any) -> Any:
    # model_dump(mode="json") would mask secrets, so reveal them explicitly
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {k: _storable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_storable(item) for item in value]
    return value


class SourceService:
    """Manages data source configurations and reads their live structure.

    Handles:
    - Adding, listing, and removing data sources
    - Testing source connections
    - Listing tables and fingerprinting schemas

    Adapter operations are async but wrapped for sync CLI and API usage.
    """

    def __init__(self, session: Session, driver: SourceDriver | None = None) -> None:
        """Initialize source service.

        Args:
            session: SQLAlchemy database session.
            driver: Fetch capability for introspection. Defaults to the
                adapter-backed driver.
        """
        self.session = session
        self.repo = DataSourceRepository(session)
        self.join_repo = JoinCatalogRepository(session)
        self.reader = SchemaCatalogReader(driver or AdapterSourceDriver(session))

    def _validate(self, source_type: str, config: dict[str, Any]) -> dict[str, Any]:
        schema = AdapterRegistry.get_config_schema(source_type)
        try:
            validated: BaseModel = schema(**config)
        except ValueError as e:
            raise AdapterConfigurationError(
                f"Invalid configuration for {source_type}: {e}",
                source_type=source_type,
            ) from e
        return _storable(validated.model_dump())

    def add_source(
        self,
        name: str,
        source_type: str,
        config_path: Path,
        display_name: str | None = None,
    ) -> DataSource:
        """Add a new data source from a YAML configuration file.

        Args:
            name: Unique name for the source.
            source_type: Type of adapter (e.g., 'postgresql').
            config_path: Path to YAML configuration file.
            display_name: Optional human-readable name.

        Returns:
            Created DataSource instance.

        Raises:
            SourceExistsError: If source with name already exists.
            AdapterNotFoundError: If source_type is not registered.
            AdapterConfigurationError: If the configuration is invalid.
            ConfigLoadError: If config file cannot be read.
        """
        if self.repo.exists(name):
            raise SourceExistsError(name)
        if not AdapterRegistry.is_registered(source_type):
            raise AdapterNotFoundError(source_type)

        config = load_source_config(config_path)
        return self.add_source_from_dict(name, source_type, config, display_name)

    def add_source_from_dict(
        self,
        name: str,
        source_type: str,
        connection_info: dict[str, Any],
        display_name: str | None = None,
    ) -> DataSource:
        """Add a new data source from a connection info dict.

        Raises:
            SourceExistsError: If source with name already exists.
            AdapterNotFoundError: If source_type is not registered.
            AdapterConfigurationError: If connection_info is invalid for the adapter.
        """
        if self.repo.exists(name):
            raise SourceExistsError(name)
        if not AdapterRegistry.is_registered(source_type):
            raise AdapterNotFoundError(source_type)

        source = self.repo.create(
            name=name,
            source_type=source_type,
            connection_info=self._validate(source_type, connection_info),
            display_name=display_name,
        )
        # Populate id and timestamps
        self.repo.flush()
        logger.info(f"Added {source_type} data source {name!r}")
        return source

    def list_sources(self, active_only: bool = False) -> list[DataSource]:
        if active_only:
            return self.repo.get_active()
        return self.repo.get_all()

    def get_source(self, name: str) -> DataSource:
        """Get a data source by name.

        Raises:
            SourceNotFoundError: If source does not exist.
        """
        source = self.repo.get_by_name(name)
        if source is None:
            raise SourceNotFoundError(name)
        return source

    def remove_source(self, name: str) -> int:
        """Remove a data source and every join catalog entry touching it.

        Returns:
            Number of join catalog entries removed.

        Raises:
            SourceNotFoundError: If source does not exist.
        """
        source = self.get_source(name)
        removed = self.join_repo.delete_by_data_source(source.id)
        self.repo.delete(source)
        self.repo.flush()
        logger.info(f"Removed data source {name!r} and {removed} catalog joins")
        return removed

    def test_source(self, name: str) -> ConnectionTestResult:
        """Test connection to a data source.

        Raises:
            SourceNotFoundError: If source does not exist.
        """
        source = self.get_source(name)

        async def _test() -> ConnectionTestResult:
            start = time.perf_counter()
            try:
                adapter = AdapterRegistry.get_adapter(source.source_type, source.connection_info)
                async with adapter:
                    connected = await adapter.test_connection()
            except Exception as e:
                return ConnectionTestResult(source_name=name, connected=False, message=str(e))
            latency = (time.perf_counter() - start) * 1000
            return ConnectionTestResult(
                source_name=name,
                connected=connected,
                message="Connection successful" if connected else "Connection test failed",
                latency_ms=round(latency, 2),
            )

        return asyncio.run(_test())

    def list_tables(self, name: str, schema: str | None = None) -> list[TableMetadata]:
        """Introspect a data source's tables.

        Raises:
            SourceNotFoundError: If source does not exist.
            AdapterError: If the source cannot be introspected.
        """
        source = self.get_source(name)
        return asyncio.run(self.reader.introspect(source.id, schema))

    def schema_hash(
        self,
        name: str,
        schema: str | None = None,
        previous_hash: str | None = None,
    ) -> SchemaHashResult:
        """Fingerprint a data source's structure, optionally against a previous hash.

        Raises:
            SourceNotFoundError: If source does not exist.
            AdapterError: If the source cannot be introspected.
        """
        tables = self.list_tables(name, schema)
        current = generate_hash_from_tables(tables)
        return SchemaHashResult(
            source_name=name,
            data_source_id=self.get_source(name).id,
            schema_name=schema,
            schema_hash=current,
            table_count=len(tables),
            changed=None if previous_hash is None else current != previous_hash,
        )

    def get_available_adapters(self) -> list[dict[str, Any]]:
        """Describe the registered adapter types."""
        return [
            {
                "type": info.source_type,
                "display_name": info.display_name,
                "object_types": info.supported_object_types,
                "dialect": info.dialect,
            }
            for info in AdapterRegistry.list_adapters()
        ]
