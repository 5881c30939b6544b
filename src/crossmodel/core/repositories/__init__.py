"""Data access repositories for crossmodel."""

from crossmodel.core.repositories.base import BaseRepository
from crossmodel.core.repositories.data_source import DataSourceRepository
from crossmodel.core.repositories.join_catalog import JoinCatalogRepository

__all__ = [
    "BaseRepository",
    "DataSourceRepository",
    "JoinCatalogRepository",
]
