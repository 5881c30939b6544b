"""Tests for AdapterRegistry."""

import pytest

from crossmodel.core.adapters import (
    AdapterConfigurationError,
    AdapterNotFoundError,
    AdapterRegistry,
    FlatFileAdapter,
    MongoDBConfig,
    PostgreSQLAdapter,
    PostgreSQLConfig,
    SQLiteAdapter,
)


class TestAdapterRegistry:
    """Test cases for AdapterRegistry."""

    @pytest.mark.parametrize(
        "source_type,dialect",
        [
            ("sqlite", "sqlite"),
            ("flatfile", "sqlite"),
            ("postgresql", "postgresql"),
            ("mongodb", "mongodb"),
        ],
    )
    def test_builtin_adapters_registered(self, source_type, dialect):
        assert AdapterRegistry.is_registered(source_type)
        assert AdapterRegistry.get_dialect(source_type) == dialect

    def test_list_adapters(self):
        adapters = {info.source_type: info for info in AdapterRegistry.list_adapters()}

        assert adapters["postgresql"].display_name == "PostgreSQL"
        assert "VIEW" in adapters["sqlite"].supported_object_types
        assert adapters["flatfile"].supported_object_types == ["FILE"]

    def test_get_adapter_info(self):
        info = AdapterRegistry.get_adapter_info("postgresql")

        assert info.adapter_class == PostgreSQLAdapter
        assert info.config_schema == PostgreSQLConfig

    def test_get_adapter_not_found(self):
        with pytest.raises(AdapterNotFoundError) as exc_info:
            AdapterRegistry.get_adapter("oracle", {})

        assert "oracle" in str(exc_info.value)

    def test_get_dialect_not_found(self):
        with pytest.raises(AdapterNotFoundError):
            AdapterRegistry.get_dialect("oracle")

    def test_get_config_schema(self):
        assert AdapterRegistry.get_config_schema("mongodb") == MongoDBConfig

    def test_get_adapter_validates_config(self):
        with pytest.raises(AdapterConfigurationError) as exc_info:
            AdapterRegistry.get_adapter("sqlite", {})

        assert exc_info.value.source_type == "sqlite"

    def test_get_adapter_creates_instance(self, tmp_path):
        adapter = AdapterRegistry.get_adapter("sqlite", {"path": str(tmp_path / "a.db")})

        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.config.schema_name == "main"

    def test_flatfile_is_a_sqlite_adapter(self, tmp_path):
        adapter = AdapterRegistry.get_adapter("flatfile", {"directory": str(tmp_path)})

        assert isinstance(adapter, FlatFileAdapter)
        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.schema_name == "files"
