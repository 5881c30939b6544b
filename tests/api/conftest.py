"""API test fixtures."""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crossmodel.api.app import create_app
from crossmodel.api.dependencies import get_db

# Import all models to ensure they're registered with Base before creating tables
from crossmodel.core.models import Base, DataSource, JoinCatalogEntry  # noqa: F401


@pytest.fixture
def test_engine():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool to ensure all connections share the same in-memory database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Create a session factory bound to the test engine."""
    return sessionmaker(bind=test_engine, autocommit=False, autoflush=False)


@pytest.fixture
def client(test_session_factory) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override.

    Yields:
        FastAPI TestClient configured with test database.
    """
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        session = test_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client


def _create_source(client: TestClient, name: str, path: Path) -> int:
    response = client.post(
        "/api/v1/sources",
        json={"name": name, "source_type": "sqlite", "connection_info": {"path": str(path)}},
    )
    assert response.status_code == 201, f"Failed to create source: {response.json()}"
    return response.json()["id"]


@pytest.fixture
def client_with_sources(
    client: TestClient,
    shop_db: Path,
    crm_db: Path,
    sales_db: Path,
) -> tuple[TestClient, dict[str, int]]:
    """Test client with shop, crm and sales SQLite sources configured."""
    ids = {
        name: _create_source(client, name, path)
        for name, path in (("shop", shop_db), ("crm", crm_db), ("sales", sales_db))
    }
    return client, ids
