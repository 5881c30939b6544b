"""Flat file adapter: a directory of CSV files exposed as tables."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import polars as pl
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeEngine

from crossmodel.core.adapters.exceptions import AdapterConnectionError
from crossmodel.core.adapters.registry import AdapterRegistry
from crossmodel.core.adapters.schemas import FlatFileConfig
from crossmodel.core.adapters.sqlite import SQLiteAdapter

logger = logging.getLogger(__name__)

_UTF8_ENCODINGS = {"utf-8", "utf8"}


def column_type(dtype: pl.DataType) -> type[TypeEngine]:
    """Map a polars dtype to the SQLAlchemy type used for the loaded column.

    Args:
        dtype: Dtype polars inferred for the CSV column.

    Returns:
        SQLAlchemy type class. Anything not numeric, boolean or temporal is Text.
    """
    if dtype.is_integer():
        return Integer
    if dtype.is_float():
        return Float
    if dtype == pl.Boolean:
        return Boolean
    if dtype == pl.Date:
        return Date
    if dtype == pl.Datetime:
        return DateTime
    return Text


@AdapterRegistry.register(
    source_type="flatfile",
    display_name="Flat files (CSV)",
    config_schema=FlatFileConfig,
)
class FlatFileAdapter(SQLiteAdapter):
    """Adapter exposing delimited text files as queryable tables.

    On connect every matching file is loaded into a private in-memory SQLite
    database with inferred column types, so compiled queries use the SQLite
    dialect.
    """

    SUPPORTED_OBJECT_TYPES = ["FILE"]
    DIALECT = "sqlite"
    SOURCE_TYPE = "flatfile"

    def __init__(self, config: FlatFileConfig) -> None:
        super().__init__(config)
        self.config: FlatFileConfig = config

    @property
    def schema_name(self) -> str:
        return self.config.schema_name

    def _files(self) -> list[Path]:
        directory = Path(self.config.directory)
        return sorted(path for path in directory.glob(self.config.pattern) if path.is_file())

    def _read_file(self, path: Path) -> pl.DataFrame:
        source: Path | bytes = path
        if self.config.encoding.lower() not in _UTF8_ENCODINGS:
            source = path.read_text(encoding=self.config.encoding).encode("utf-8")
        options = {"separator": self.config.delimiter, "try_parse_dates": True}
        try:
            return pl.read_csv(
                source, infer_schema_length=self.config.type_sample_rows, **options
            )
        except pl.exceptions.ComputeError:
            # A row past the sample does not parse as the inferred type
            logger.debug(f"Re-reading {path.name} with full schema inference")
            return pl.read_csv(source, infer_schema_length=None, **options)

    def _load_file(self, engine: Engine, metadata: MetaData, path: Path) -> None:
        try:
            frame = self._read_file(path)
        except pl.exceptions.NoDataError:
            logger.warning(f"Skipping empty file {path}")
            return

        table = Table(
            path.stem,
            metadata,
            *(Column(name, column_type(dtype)()) for name, dtype in frame.schema.items()),
        )
        table.create(engine)
        if frame.height:
            with engine.begin() as conn:
                conn.execute(table.insert(), frame.to_dicts())
        logger.debug(f"Loaded {frame.height} rows from {path.name}")

    async def connect(self) -> None:
        """Load every matching file into an in-memory database."""
        directory = Path(self.config.directory)
        if not directory.is_dir():
            raise AdapterConnectionError(
                f"Directory not found: {directory}",
                source_type=self.SOURCE_TYPE,
            )

        def _load() -> Engine:
            engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            metadata = MetaData()
            for path in self._files():
                self._load_file(engine, metadata, path)
            return engine

        try:
            loop = asyncio.get_running_loop()
            self._engine = await loop.run_in_executor(None, _load)
        except (OSError, UnicodeDecodeError, pl.exceptions.PolarsError, SQLAlchemyError) as e:
            raise AdapterConnectionError(
                f"Failed to load files from {directory}: {e}",
                source_type=self.SOURCE_TYPE,
            ) from e

    def _object_type(self, kind: str) -> str:
        return "FILE"

    async def get_foreign_keys(self) -> list[dict[str, Any]]:
        """Files carry no declared relationships."""
        return []
