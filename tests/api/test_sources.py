"""Tests for sources endpoints."""

from pathlib import Path

from fastapi.testclient import TestClient


class TestListSources:
    """Tests for GET /api/v1/sources."""

    def test_list_sources_empty(self, client: TestClient):
        """Returns empty list when no sources configured."""
        response = client.get("/api/v1/sources")

        assert response.status_code == 200
        assert response.json() == []

    def test_list_sources_with_sources(self, client_with_sources):
        client, _ = client_with_sources

        response = client.get("/api/v1/sources")

        assert response.status_code == 200
        assert [s["name"] for s in response.json()] == ["shop", "crm", "sales"]
        assert all(s["source_type"] == "sqlite" for s in response.json())


class TestCreateSource:
    """Tests for POST /api/v1/sources."""

    def test_create_source_success(self, client: TestClient, shop_db: Path):
        response = client.post(
            "/api/v1/sources",
            json={
                "name": "shop",
                "source_type": "sqlite",
                "display_name": "Shop",
                "connection_info": {"path": str(shop_db)},
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "shop"
        assert data["display_name"] == "Shop"
        assert data["is_active"] is True
        assert "id" in data
        assert "created_at" in data
        # Connection details are never echoed back
        assert "connection_info" not in data

    def test_create_duplicate_source(self, client_with_sources, shop_db: Path):
        client, _ = client_with_sources

        response = client.post(
            "/api/v1/sources",
            json={"name": "shop", "source_type": "sqlite", "connection_info": {"path": str(shop_db)}},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "source_exists"

    def test_create_source_invalid_type(self, client: TestClient):
        response = client.post(
            "/api/v1/sources",
            json={"name": "x", "source_type": "oracle", "connection_info": {}},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_source_type"

    def test_create_source_invalid_config(self, client: TestClient):
        response = client.post(
            "/api/v1/sources",
            json={"name": "pg", "source_type": "postgresql", "connection_info": {"host": "db"}},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_configuration"

    def test_create_source_missing_fields(self, client: TestClient):
        response = client.post("/api/v1/sources", json={"name": "x"})

        assert response.status_code == 422


class TestSourceDetail:
    """Tests for single-source endpoints."""

    def test_get_source(self, client_with_sources):
        client, ids = client_with_sources

        response = client.get("/api/v1/sources/crm")

        assert response.status_code == 200
        assert response.json()["id"] == ids["crm"]

    def test_get_source_not_found(self, client: TestClient):
        response = client.get("/api/v1/sources/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "source_not_found"
        assert response.json()["detail"] == {"source_name": "nope"}

    def test_delete_source(self, client_with_sources):
        client, _ = client_with_sources

        response = client.delete("/api/v1/sources/crm")

        assert response.status_code == 204
        assert client.get("/api/v1/sources/crm").status_code == 404

    def test_test_connection(self, client_with_sources, crm_db: Path):
        client, _ = client_with_sources

        assert client.post("/api/v1/sources/crm/test").json()["connected"] is True

        crm_db.unlink()
        result = client.post("/api/v1/sources/crm/test").json()

        assert result["connected"] is False
        assert "not found" in result["message"]

    def test_list_tables(self, client_with_sources):
        client, _ = client_with_sources

        response = client.get("/api/v1/sources/shop/tables")

        assert response.status_code == 200
        tables = response.json()
        assert [t["table_name"] for t in tables] == ["customers", "orders"]
        assert [c["column_name"] for c in tables[0]["columns"]] == ["id", "name", "country"]

    def test_list_tables_unreachable(self, client_with_sources, sales_db: Path):
        client, ids = client_with_sources
        sales_db.unlink()

        response = client.get("/api/v1/sources/sales/tables")

        assert response.status_code == 502
        assert response.json()["error"] == "adapter_error"
        assert response.json()["detail"]["source_id"] == ids["sales"]

    def test_schema_hash(self, client_with_sources):
        client, _ = client_with_sources

        first = client.get("/api/v1/sources/shop/hash").json()
        second = client.get(
            "/api/v1/sources/shop/hash", params={"previous": first["schema_hash"]}
        ).json()

        assert first["table_count"] == 2
        assert first["changed"] is None
        assert second["changed"] is False
