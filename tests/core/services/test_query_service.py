"""Tests for QueryService."""

from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from crossmodel.core.adapters import AdapterConnectionError
from crossmodel.core.models import ColumnMetadata
from crossmodel.core.models.query import JoinCondition, JoinSide, QueryDescriptor, TableRef
from crossmodel.core.query.exceptions import CompilationError
from crossmodel.core.services import ConfiguredRowLimits, QueryService, SourceService


def _select(table: str, column: str) -> ColumnMetadata:
    return ColumnMetadata(column_name=column, table_name=table, is_selected=True)


def _descriptor(customers_source: int | None = None, orders_source: int | None = None):
    return QueryDescriptor(
        root_table=TableRef(table_name="customers", data_source_id=customers_source),
        columns=[_select("customers", "name"), _select("orders", "amount")],
        join_conditions=[
            JoinCondition(
                left=JoinSide(table="customers", column="id", data_source_id=customers_source),
                right=JoinSide(table="orders", column="customer_id", data_source_id=orders_source),
            )
        ],
    )


@pytest.fixture
def service(test_db: Session) -> QueryService:
    return QueryService(test_db, row_limits=ConfiguredRowLimits(limits={"acme": 2}))


def _add(test_db: Session, name: str, path: Path) -> int:
    source = SourceService(test_db).add_source_from_dict(name, "sqlite", {"path": str(path)})
    test_db.commit()
    return source.id


class TestQueryService:
    """Test cases for QueryService."""

    def test_compile_single_source(self, test_db: Session, service: QueryService, shop_db: Path):
        shop = _add(test_db, "shop", shop_db)

        plan = service.compile(_descriptor(shop, shop))

        assert plan.kind == "single"
        assert plan.data_source_id == shop

    def test_unpinned_tables_resolve_across_active_sources(
        self, test_db: Session, service: QueryService, crm_db: Path, sales_db: Path
    ):
        crm = _add(test_db, "crm", crm_db)
        sales = _add(test_db, "sales", sales_db)

        plan = service.compile(_descriptor())

        assert plan.kind == "federated"
        assert plan.data_source_ids == [crm, sales]

    def test_unknown_pinned_source_raises(self, test_db: Session, service: QueryService):
        with pytest.raises(CompilationError, match="Unknown data source 42"):
            service.compile(_descriptor(42, 42))

    def test_execute_applies_tenant_limit(
        self, test_db: Session, service: QueryService, shop_db: Path
    ):
        shop = _add(test_db, "shop", shop_db)

        limited = service.compile_and_execute(_descriptor(shop, shop), tenant_id="acme")
        unlimited = service.compile_and_execute(_descriptor(shop, shop))

        assert limited.row_count == 2
        assert limited.truncated is True
        assert unlimited.row_count == 3
        assert unlimited.truncated is False

    def test_broken_unrelated_source_does_not_fail_unpinned_query(
        self, test_db: Session, service: QueryService, shop_db: Path, tmp_path: Path
    ):
        _add(test_db, "shop", shop_db)
        SourceService(test_db).add_source_from_dict(
            "exports", "flatfile", {"directory": str(tmp_path / "missing")}
        )
        test_db.commit()

        result = service.compile_and_execute(_descriptor())

        assert result.row_count == 3

    def test_unpinned_table_in_broken_source_only_raises(
        self, test_db: Session, service: QueryService, crm_db: Path, sales_db: Path
    ):
        _add(test_db, "crm", crm_db)
        _add(test_db, "sales", sales_db)
        sales_db.unlink()

        with pytest.raises(CompilationError, match="Unknown table 'orders'"):
            service.compile(_descriptor())

    def test_broken_pinned_source_raises(
        self, test_db: Session, service: QueryService, shop_db: Path
    ):
        shop = _add(test_db, "shop", shop_db)
        shop_db.unlink()

        with pytest.raises(AdapterConnectionError) as exc_info:
            service.compile(_descriptor(shop, shop))

        assert exc_info.value.source_id == shop
