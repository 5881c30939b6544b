"""Tests for the main CLI entry point."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from crossmodel import __version__
from crossmodel.cli.main import app


def _add_source(cli_runner: CliRunner, tmp_path: Path, name: str, db_path: Path) -> dict:
    config_file = tmp_path / f"{name}.yaml"
    config_file.write_text(f"path: {db_path}\n")
    result = cli_runner.invoke(
        app, ["source", "add", name, "--type", "sqlite", "--config", str(config_file)]
    )
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


@pytest.fixture
def federated_sources(
    cli_runner: CliRunner, temp_data_dir: Path, tmp_path: Path, crm_db: Path, sales_db: Path
) -> dict[str, int]:
    return {
        name: _add_source(cli_runner, tmp_path, name, path)["id"]
        for name, path in (("crm", crm_db), ("sales", sales_db))
    }


def _descriptor_file(tmp_path: Path, customers_source: int, orders_source: int) -> Path:
    path = tmp_path / "query.json"
    path.write_text(
        json.dumps({
            "root_table": {"table_name": "customers", "data_source_id": customers_source},
            "columns": [
                {"column_name": "name", "table_name": "customers", "is_selected": True},
                {"column_name": "amount", "table_name": "orders", "is_selected": True},
            ],
            "join_conditions": [
                {
                    "left": {
                        "table": "customers",
                        "column": "id",
                        "data_source_id": customers_source,
                    },
                    "right": {
                        "table": "orders",
                        "column": "customer_id",
                        "data_source_id": orders_source,
                    },
                    "join_type": "LEFT",
                }
            ],
            "query_options": {"order_by": [{"column": "customers.name"}]},
        })
    )
    return path


class TestVersion:
    """Tests for version display."""

    def test_version_flag(self, cli_runner: CliRunner):
        """Test --version flag shows version."""
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_version_short_flag(self, cli_runner: CliRunner):
        """Test -v flag shows version."""
        result = cli_runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestHelp:
    """Tests for help display."""

    def test_help_flag(self, cli_runner: CliRunner):
        """Test --help flag shows help text."""
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "crossmodel" in result.stdout.lower()
        assert "source" in result.stdout

    def test_no_args_shows_help(self, cli_runner: CliRunner):
        """Test that running without arguments shows help."""
        result = cli_runner.invoke(app, [])
        # Typer returns exit code 2 when showing help due to no_args_is_help
        assert result.exit_code == 2
        assert "Usage" in result.stdout


class TestSourceCommands:
    """Tests for source command group."""

    def test_source_help(self, cli_runner: CliRunner):
        """Test source --help shows subcommands."""
        result = cli_runner.invoke(app, ["source", "--help"])
        assert result.exit_code == 0
        for command in ("add", "list", "test", "tables", "hash"):
            assert command in result.stdout

    def test_source_add_success(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        """Test source add creates a new source."""
        result = cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )
        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["name"] == "shop"
        assert output["type"] == "sqlite"

    def test_source_add_invalid_type(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        """Test source add with unknown type fails and lists available types."""
        result = cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "oracle", "--config", str(sample_config_file)],
        )
        assert result.exit_code == 1
        assert "unknown source type" in result.output.lower()
        assert "sqlite" in result.output

    def test_source_add_duplicate(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        args = ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)]
        cli_runner.invoke(app, args)

        result = cli_runner.invoke(app, args)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_source_add_missing_config_file(
        self, cli_runner: CliRunner, temp_data_dir: Path, tmp_path: Path
    ):
        result = cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(tmp_path / "no.yaml")],
        )
        assert result.exit_code == 1

    def test_source_list(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )

        result = cli_runner.invoke(app, ["source", "list", "--show-config"])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [s["name"] for s in output] == ["shop"]
        assert output[0]["connection_info"]["schema_name"] == "main"

    def test_source_list_empty(self, cli_runner: CliRunner, temp_data_dir: Path):
        result = cli_runner.invoke(app, ["source", "list"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_source_test(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )

        result = cli_runner.invoke(app, ["source", "test", "shop"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["connected"] is True

    def test_source_test_not_found(self, cli_runner: CliRunner, temp_data_dir: Path):
        result = cli_runner.invoke(app, ["source", "test", "nonexistent"])
        assert result.exit_code == 1
        assert "not found" in result.output.lower()

    def test_source_tables(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )

        result = cli_runner.invoke(app, ["source", "tables", "shop", "--columns"])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [t["table"] for t in output] == ["customers", "orders"]
        assert output[1]["column_count"] == 4
        assert output[0]["columns"][0] == {
            "name": "id",
            "data_type": "INTEGER",
            "type_tag": "integer",
        }

    def test_source_hash(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )

        first = json.loads(cli_runner.invoke(app, ["source", "hash", "shop"]).stdout)
        result = cli_runner.invoke(
            app, ["source", "hash", "shop", "--previous", first["schema_hash"]]
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["changed"] is False

    def test_source_remove(
        self, cli_runner: CliRunner, temp_data_dir: Path, sample_config_file: Path
    ):
        cli_runner.invoke(
            app,
            ["source", "add", "shop", "--type", "sqlite", "--config", str(sample_config_file)],
        )

        result = cli_runner.invoke(app, ["source", "remove", "shop", "--force"])

        assert result.exit_code == 0
        assert "Removed data source" in result.stdout
        assert json.loads(cli_runner.invoke(app, ["source", "list"]).stdout) == []


class TestJoinsCommands:
    """Tests for joins command group."""

    def test_joins_suggest(self, cli_runner: CliRunner, federated_sources):
        result = cli_runner.invoke(app, ["joins", "suggest", "crm.customers", "sales.orders"])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert [s["right"] for s in output] == ["orders.id", "orders.customer_id"]
        assert output[0]["source"] == "heuristic"

    def test_joins_save_and_list(self, cli_runner: CliRunner, federated_sources):
        args = ["joins", "save", "crm.customers.id", "sales.orders.customer_id", "--type", "LEFT"]
        cli_runner.invoke(app, args)
        result = cli_runner.invoke(app, args)

        assert result.exit_code == 0
        assert json.loads(result.stdout)["usage_count"] == 2

        listed = json.loads(cli_runner.invoke(app, ["joins", "list", "--source", "crm"]).stdout)
        assert len(listed) == 1
        assert listed[0]["join_type"] == "LEFT"

        suggested = json.loads(
            cli_runner.invoke(app, ["joins", "suggest", "crm.customers", "sales.orders"]).stdout
        )
        assert suggested[0]["source"] == "catalog"

    def test_joins_save_missing_column(self, cli_runner: CliRunner, federated_sources):
        result = cli_runner.invoke(
            app, ["joins", "save", "crm.customers.id", "sales.orders.client_id"]
        )

        assert result.exit_code == 1
        assert "Column not found" in result.output

    def test_joins_suggest_bad_reference(self, cli_runner: CliRunner, federated_sources):
        result = cli_runner.invoke(app, ["joins", "suggest", "customers", "sales.orders"])

        assert result.exit_code == 2


class TestQueryCommands:
    """Tests for query command group."""

    def test_query_compile(self, cli_runner: CliRunner, federated_sources, tmp_path: Path):
        descriptor = _descriptor_file(
            tmp_path, federated_sources["crm"], federated_sources["sales"]
        )

        result = cli_runner.invoke(app, ["query", "compile", str(descriptor)])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["kind"] == "federated"
        assert [q["fragment"] for q in output["queries"]] == ["f0", "f1"]

    def test_query_run(self, cli_runner: CliRunner, federated_sources, tmp_path: Path):
        descriptor = _descriptor_file(
            tmp_path, federated_sources["crm"], federated_sources["sales"]
        )

        result = cli_runner.invoke(app, ["query", "run", str(descriptor)])

        assert result.exit_code == 0
        output = json.loads(result.stdout)
        assert output["federated"] is True
        assert output["row_count"] == 5
        assert [row["customers.name"] for row in output["rows"]] == [
            "Alice",
            "Alice",
            "Bob",
            "Carol",
            "Dan",
        ]

    def test_query_run_table_format(
        self, cli_runner: CliRunner, federated_sources, tmp_path: Path
    ):
        descriptor = _descriptor_file(
            tmp_path, federated_sources["crm"], federated_sources["sales"]
        )

        result = cli_runner.invoke(app, ["query", "run", str(descriptor), "--format", "table"])

        assert result.exit_code == 0
        assert "Carol" in result.stdout

    def test_query_run_unknown_column(
        self, cli_runner: CliRunner, federated_sources, tmp_path: Path
    ):
        descriptor = _descriptor_file(
            tmp_path, federated_sources["crm"], federated_sources["sales"]
        )
        descriptor.write_text(descriptor.read_text().replace('"amount"', '"total"'))

        result = cli_runner.invoke(app, ["query", "run", str(descriptor)])

        assert result.exit_code == 1
        assert "Compilation error" in result.output

    def test_query_run_invalid_descriptor(
        self, cli_runner: CliRunner, temp_data_dir: Path, tmp_path: Path
    ):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"columns": []}))

        result = cli_runner.invoke(app, ["query", "run", str(path)])

        assert result.exit_code == 1
        assert "Invalid query descriptor" in result.output

    def test_query_run_unreachable_source(
        self, cli_runner: CliRunner, federated_sources, tmp_path: Path, sales_db: Path
    ):
        descriptor = _descriptor_file(
            tmp_path, federated_sources["crm"], federated_sources["sales"]
        )
        sales_db.unlink()

        result = cli_runner.invoke(app, ["query", "run", str(descriptor)])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestAdaptersCommands:
    """Tests for adapters command group."""

    def test_adapters_list(self, cli_runner: CliRunner, temp_data_dir: Path):
        """Test adapters list shows registered adapters."""
        result = cli_runner.invoke(app, ["adapters", "list"])
        assert result.exit_code == 0
        output = json.loads(result.stdout)

        types = [a["type"] for a in output]
        assert {"sqlite", "flatfile", "postgresql", "mongodb"} <= set(types)

    def test_adapters_list_table_format(self, cli_runner: CliRunner, temp_data_dir: Path):
        """Test adapters list with table format."""
        result = cli_runner.invoke(app, ["adapters", "list", "--format", "table"])
        assert result.exit_code == 0
        assert "postgresql" in result.stdout.lower()
