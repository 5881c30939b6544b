"""Pytest configuration and shared fixtures."""

import os
import sqlite3
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from typer.testing import CliRunner

# Import models to ensure all tables are registered with Base before create_all
from crossmodel.core import models  # noqa: F401
from crossmodel.core.catalog import normalize_type
from crossmodel.core.models import Base, ColumnMetadata, ForeignKeyReference, TableMetadata

CUSTOMERS_DDL = """
CREATE TABLE customers (
    id INTEGER PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    country TEXT
)
"""

ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER REFERENCES customers(id),
    amount REAL,
    status TEXT
)
"""

CUSTOMERS = [
    (1, "Alice", "US"),
    (2, "Bob", "UK"),
    (3, "Carol", "US"),
    (4, "Dan", None),
]

# Order 13 points at a customer that does not exist, order 14 at nobody
ORDERS = [
    (10, 1, 100.0, "paid"),
    (11, 1, 50.0, "open"),
    (12, 2, 75.0, "paid"),
    (13, 9, 20.0, "paid"),
    (14, None, 5.0, "open"),
]


def _write_db(path: Path, customers: bool = True, orders: bool = True) -> Path:
    conn = sqlite3.connect(path)
    try:
        if customers:
            conn.execute(CUSTOMERS_DDL)
            conn.executemany("INSERT INTO customers VALUES (?, ?, ?)", CUSTOMERS)
        if orders:
            conn.execute(ORDERS_DDL)
            conn.executemany("INSERT INTO orders VALUES (?, ?, ?, ?)", ORDERS)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a CLI runner for testing Typer commands."""
    return CliRunner()


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Foreign keys are enforced so join catalog cascades behave as in production.
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary data directory for testing.

    Sets CROSSMODEL_DATA_DIR and resets the global database engine so each
    test gets a fresh catalog database.
    """
    from crossmodel.config.settings import get_settings
    from crossmodel.core.database import reset_engine

    get_settings.cache_clear()

    data_dir = tmp_path / "crossmodel"
    data_dir.mkdir()

    old_value = os.environ.get("CROSSMODEL_DATA_DIR")
    os.environ["CROSSMODEL_DATA_DIR"] = str(data_dir)
    reset_engine()

    try:
        yield data_dir
    finally:
        reset_engine()

        if old_value is not None:
            os.environ["CROSSMODEL_DATA_DIR"] = old_value
        else:
            os.environ.pop("CROSSMODEL_DATA_DIR", None)

        get_settings.cache_clear()


@pytest.fixture
def shop_db(tmp_path: Path) -> Path:
    """SQLite file holding both customers and orders."""
    return _write_db(tmp_path / "shop.db")


@pytest.fixture
def crm_db(tmp_path: Path) -> Path:
    """SQLite file holding only customers."""
    return _write_db(tmp_path / "crm.db", orders=False)


@pytest.fixture
def sales_db(tmp_path: Path) -> Path:
    """SQLite file holding only orders."""
    return _write_db(tmp_path / "sales.db", customers=False)


@pytest.fixture
def sample_config_file(tmp_path: Path, shop_db: Path) -> Path:
    """Source configuration file for the shop SQLite database."""
    config_file = tmp_path / "shop.yaml"
    config_file.write_text(f"path: {shop_db}\n")
    return config_file


@pytest.fixture
def make_table() -> Callable[..., TableMetadata]:
    """Factory for TableMetadata.

    Columns are ``(name, native_type)`` pairs, or ``(name, native_type, fk)``
    where ``fk`` is ``"table.column"`` in the same schema.
    """

    def _make(
        data_source_id: int,
        table_name: str,
        columns: list[tuple],
        schema_name: str = "public",
    ) -> TableMetadata:
        metadata = []
        for position, spec in enumerate(columns, start=1):
            name, native_type = spec[0], spec[1]
            reference = None
            if len(spec) > 2:
                foreign_table, foreign_column = spec[2].split(".")
                reference = ForeignKeyReference(
                    local_schema=schema_name,
                    local_table=table_name,
                    local_column=name,
                    foreign_schema=schema_name,
                    foreign_table=foreign_table,
                    foreign_column=foreign_column,
                )
            metadata.append(
                ColumnMetadata(
                    column_name=name,
                    data_type=native_type,
                    type_tag=normalize_type(native_type),
                    ordinal_position=position,
                    schema_name=schema_name,
                    table_name=table_name,
                    reference=reference,
                    data_source_id=data_source_id,
                )
            )
        return TableMetadata(
            data_source_id=data_source_id,
            schema_name=schema_name,
            table_name=table_name,
            columns=metadata,
        )

    return _make


@pytest.fixture
def shop_tables(make_table) -> Callable[[int, int], list[TableMetadata]]:
    """Customers and orders metadata, placed in the given data sources."""

    def _tables(customers_source: int = 1, orders_source: int = 2) -> list[TableMetadata]:
        return [
            make_table(
                customers_source,
                "customers",
                [("id", "integer"), ("name", "varchar(100)"), ("country", "text")],
            ),
            make_table(
                orders_source,
                "orders",
                [
                    ("id", "integer"),
                    ("customer_id", "integer", "customers.id"),
                    ("amount", "numeric(10,2)"),
                    ("status", "text"),
                ],
            ),
        ]

    return _tables
