"""Adapter registry for discovering and instantiating adapters."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from crossmodel.core.adapters.base import SourceAdapter
from crossmodel.core.adapters.exceptions import (
    AdapterConfigurationError,
    AdapterNotFoundError,
)


@dataclass
class AdapterInfo:
    """Metadata about a registered adapter."""

    source_type: str
    display_name: str
    adapter_class: type[SourceAdapter]
    config_schema: type[BaseModel]
    supported_object_types: list[str]
    dialect: str


class AdapterRegistry:
    """Registry for data source adapters.

    Adapters register themselves using the @register decorator, making them
    discoverable and instantiable by type name. The registry also tells the
    query compiler which native dialect each source type speaks.

    Usage:
        @AdapterRegistry.register(
            source_type="sqlite",
            display_name="SQLite",
            config_schema=SQLiteConfig,
        )
        class SQLiteAdapter(SourceAdapter):
            ...

        adapter = AdapterRegistry.get_adapter("sqlite", {"path": "shop.db"})
    """

    _adapters: dict[str, AdapterInfo] = {}

    @classmethod
    def register(
        cls,
        source_type: str,
        display_name: str,
        config_schema: type[BaseModel],
    ) -> Callable[[type[SourceAdapter]], type[SourceAdapter]]:
        """Decorator to register an adapter class.

        Args:
            source_type: Unique identifier for the adapter type (e.g., 'postgresql').
            display_name: Human-readable name for display.
            config_schema: Pydantic model class for configuration validation.

        Returns:
            Decorator function.
        """

        def decorator(adapter_class: type[SourceAdapter]) -> type[SourceAdapter]:
            cls._adapters[source_type] = AdapterInfo(
                source_type=source_type,
                display_name=display_name,
                adapter_class=adapter_class,
                config_schema=config_schema,
                supported_object_types=adapter_class.SUPPORTED_OBJECT_TYPES,
                dialect=adapter_class.DIALECT,
            )
            return adapter_class

        return decorator

    @classmethod
    def get_adapter(cls, source_type: str, config: dict[str, Any]) -> SourceAdapter:
        """Instantiate an adapter by type.

        Args:
            source_type: The registered adapter type.
            config: Configuration dict to validate and pass to adapter.

        Returns:
            Instantiated adapter.

        Raises:
            AdapterNotFoundError: If source_type is not registered.
            AdapterConfigurationError: If config is invalid.
        """
        info = cls.get_adapter_info(source_type)
        try:
            validated_config = info.config_schema(**config)
        except ValidationError as e:
            raise AdapterConfigurationError(
                f"Invalid {info.display_name} configuration: {e}",
                source_type=source_type,
            ) from e
        return info.adapter_class(validated_config)

    @classmethod
    def get_adapter_info(cls, source_type: str) -> AdapterInfo:
        """Get metadata about a registered adapter.

        Raises:
            AdapterNotFoundError: If source_type is not registered.
        """
        if source_type not in cls._adapters:
            raise AdapterNotFoundError(source_type)
        return cls._adapters[source_type]

    @classmethod
    def list_adapters(cls) -> list[AdapterInfo]:
        """List all registered adapters."""
        return list(cls._adapters.values())

    @classmethod
    def get_config_schema(cls, source_type: str) -> type[BaseModel]:
        """Get the configuration schema for an adapter type.

        Raises:
            AdapterNotFoundError: If source_type is not registered.
        """
        return cls.get_adapter_info(source_type).config_schema

    @classmethod
    def get_dialect(cls, source_type: str) -> str:
        """Get the native query dialect spoken by an adapter type.

        Raises:
            AdapterNotFoundError: If source_type is not registered.
        """
        return cls.get_adapter_info(source_type).dialect

    @classmethod
    def is_registered(cls, source_type: str) -> bool:
        return source_type in cls._adapters

    @classmethod
    def available_types(cls) -> list[str]:
        return list(cls._adapters.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registered adapters.

        Primarily for testing purposes.
        """
        cls._adapters.clear()
