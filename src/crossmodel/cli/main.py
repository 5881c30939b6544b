"""Main CLI entry point for crossmodel."""

import json
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from crossmodel import __version__
from crossmodel.cli.helpers import get_session, handle_error, serialize_for_json
from crossmodel.config import configure_logging
from crossmodel.core.models import JoinDefinition, JoinSideRef, JoinType, QueryDescriptor, TableRef
from crossmodel.core.query.plan import SingleSourcePlan
from crossmodel.core.services import (
    ConfigLoadError,
    JoinService,
    QueryService,
    SourceService,
    load_yaml_config,
    mask_sensitive_values,
)

# Console instances for stdout/stderr
console = Console()
err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Output format options."""

    json = "json"
    table = "table"


# Main app
app = typer.Typer(
    name="crossmodel",
    help="Query engine that joins tables across relational databases, document stores and files.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Command groups
source_app = typer.Typer(
    help="Manage data sources.",
    no_args_is_help=True,
)
joins_app = typer.Typer(
    help="Discover and remember join keys between tables.",
    no_args_is_help=True,
)
query_app = typer.Typer(
    help="Compile and run query descriptors.",
    no_args_is_help=True,
)
adapters_app = typer.Typer(
    help="List available adapters.",
    no_args_is_help=True,
)

app.add_typer(source_app, name="source")
app.add_typer(joins_app, name="joins")
app.add_typer(query_app, name="query")
app.add_typer(adapters_app, name="adapters")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"crossmodel {__version__}")
        raise typer.Exit()


def output_result(data: dict | list, format: OutputFormat) -> None:
    """Output data in the specified format."""
    if format == OutputFormat.json:
        console.print_json(json.dumps(serialize_for_json(data)))
    else:
        if isinstance(data, list) and data:
            table = Table()
            # Use keys from first item as columns
            for key in data[0]:
                table.add_column(key)
            for row in data:
                table.add_row(*[str(v) if v is not None else "" for v in row.values()])
            console.print(table)
        elif isinstance(data, dict):
            table = Table(show_header=False)
            table.add_column("Key", style="bold")
            table.add_column("Value")
            for key, value in data.items():
                table.add_row(key, str(value) if value is not None else "")
            console.print(table)
        else:
            console.print(data)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Log progress to stderr.")
    ] = False,
) -> None:
    """crossmodel - federated queries over heterogeneous data sources."""
    # Keep stdout clean for JSON output unless asked otherwise
    configure_logging("DEBUG" if verbose else "WARNING")


def _source_row(source) -> dict:
    return {
        "id": source.id,
        "name": source.name,
        "type": source.source_type,
        "display_name": source.display_name,
        "is_active": source.is_active,
        "created_at": source.created_at,
    }


def _split_ref(ref: str, parts: int) -> list[str]:
    """Split ``source.table`` or ``source.table.column`` references.

    Table names may themselves contain dots (flat files), so only the first
    and, for column references, the last dot separate parts.
    """
    source, sep, rest = ref.partition(".")
    if not sep or not rest:
        raise typer.BadParameter(f"Expected source.table reference, got {ref!r}")
    if parts == 2:
        return [source, rest]
    table, sep, column = rest.rpartition(".")
    if not sep or not table or not column:
        raise typer.BadParameter(f"Expected source.table.column reference, got {ref!r}")
    return [source, table, column]


def _load_descriptor(path: Path) -> QueryDescriptor:
    content = load_yaml_config(path)
    try:
        return QueryDescriptor.model_validate(content)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid query descriptor in {path}: {e}") from e


# =============================================================================
# Source commands
# =============================================================================


@source_app.command("add")
def source_add(
    name: Annotated[str, typer.Argument(help="Name for the data source.")],
    source_type: Annotated[
        str, typer.Option("--type", "-t", help="Source type (e.g., postgresql).")
    ],
    config_file: Annotated[
        Path, typer.Option("--config", "-c", help="Path to source configuration YAML.")
    ],
    display_name: Annotated[
        str | None, typer.Option("--display-name", "-d", help="Human-readable display name.")
    ] = None,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Add a new data source."""
    try:
        with get_session() as session:
            service = SourceService(session)
            source = service.add_source(
                name=name,
                source_type=source_type,
                config_path=config_file,
                display_name=display_name,
            )
            session.commit()
            output_result(_source_row(source), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@source_app.command("list")
def source_list(
    show_config: Annotated[
        bool, typer.Option("--show-config", help="Include masked connection settings.")
    ] = False,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """List configured data sources."""
    try:
        with get_session() as session:
            service = SourceService(session)
            result = []
            for source in service.list_sources():
                row = _source_row(source)
                if show_config:
                    row["connection_info"] = mask_sensitive_values(source.connection_info)
                result.append(row)
            output_result(result, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@source_app.command("test")
def source_test(
    name: Annotated[str, typer.Argument(help="Name of the data source to test.")],
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Test connection to a data source."""
    try:
        with get_session() as session:
            service = SourceService(session)

            with err_console.status(f"Testing connection to [bold]{name}[/bold]..."):
                result = service.test_source(name)

            output_result(result.model_dump(), format)

            if not result.connected:
                raise typer.Exit(1)
    except typer.Exit:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@source_app.command("remove")
def source_remove(
    name: Annotated[str, typer.Argument(help="Name of the data source to remove.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation.")
    ] = False,
) -> None:
    """Remove a data source and the catalog joins that reference it."""
    try:
        with get_session() as session:
            service = SourceService(session)

            # Raises SourceNotFoundError before asking anything
            service.get_source(name)

            if not force:
                confirm = typer.confirm(
                    f"Remove data source '{name}' and all its catalog joins?"
                )
                if not confirm:
                    raise typer.Abort()

            removed = service.remove_source(name)
            session.commit()
            console.print(f"[green]Removed data source:[/green] {name} ({removed} joins)")
    except typer.Abort:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@source_app.command("tables")
def source_tables(
    name: Annotated[str, typer.Argument(help="Name of the data source.")],
    schema: Annotated[
        str | None, typer.Option("--schema", "-s", help="Only tables in this schema.")
    ] = None,
    columns: Annotated[
        bool, typer.Option("--columns", help="Include column metadata.")
    ] = False,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """List the tables of a data source, read live."""
    try:
        with get_session() as session:
            service = SourceService(session)
            tables = service.list_tables(name, schema)

            result = []
            for table in tables:
                row = {
                    "schema": table.schema_name,
                    "table": table.table_name,
                    "type": table.table_type.value,
                    "column_count": len(table.columns),
                }
                if columns:
                    row["columns"] = [
                        {
                            "name": c.column_name,
                            "data_type": c.data_type,
                            "type_tag": c.type_tag.value,
                        }
                        for c in table.columns
                    ]
                result.append(row)
            output_result(result, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@source_app.command("hash")
def source_hash(
    name: Annotated[str, typer.Argument(help="Name of the data source.")],
    schema: Annotated[
        str | None, typer.Option("--schema", "-s", help="Fingerprint only this schema.")
    ] = None,
    previous: Annotated[
        str | None, typer.Option("--previous", "-p", help="Earlier hash to compare against.")
    ] = None,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Fingerprint the structure of a data source."""
    try:
        with get_session() as session:
            service = SourceService(session)
            result = service.schema_hash(name, schema, previous)
            output_result(result.model_dump(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Join commands
# =============================================================================


@joins_app.command("suggest")
def joins_suggest(
    left: Annotated[str, typer.Argument(help="Left table as source.table.")],
    right: Annotated[str, typer.Argument(help="Right table as source.table.")],
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Suggest join keys between two tables."""
    try:
        left_source, left_table = _split_ref(left, 2)
        right_source, right_table = _split_ref(right, 2)
        with get_session() as session:
            sources = SourceService(session)
            left_ref = TableRef(
                table_name=left_table,
                data_source_id=sources.get_source(left_source).id,
            )
            right_ref = TableRef(
                table_name=right_table,
                data_source_id=sources.get_source(right_source).id,
            )

            suggestions = JoinService(session).suggestions(left_ref, right_ref)
            result = [
                {
                    "left": f"{s.left_table_name}.{s.left_column_name}",
                    "right": f"{s.right_table_name}.{s.right_column_name}",
                    "join_type": s.suggested_join_type.value,
                    "confidence": s.confidence,
                    "source": s.source.value,
                    "reason": s.reason,
                    "usage_count": s.usage_count,
                }
                for s in suggestions
            ]
            output_result(result, format)
    except typer.BadParameter:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@joins_app.command("save")
def joins_save(
    left: Annotated[str, typer.Argument(help="Left column as source.table.column.")],
    right: Annotated[str, typer.Argument(help="Right column as source.table.column.")],
    join_type: Annotated[
        JoinType, typer.Option("--type", "-t", help="Join type.")
    ] = JoinType.INNER,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Record a confirmed join in the join catalog."""
    try:
        left_source, left_table, left_column = _split_ref(left, 3)
        right_source, right_table, right_column = _split_ref(right, 3)
        with get_session() as session:
            sources = SourceService(session)
            definition = JoinDefinition(
                left=JoinSideRef(
                    data_source_id=sources.get_source(left_source).id,
                    table_name=left_table,
                    column_name=left_column,
                ),
                right=JoinSideRef(
                    data_source_id=sources.get_source(right_source).id,
                    table_name=right_table,
                    column_name=right_column,
                ),
                join_type=join_type,
            )

            entry = JoinService(session).save_join(definition)
            session.commit()
            output_result(
                {
                    "id": entry.id,
                    "left": f"{entry.left_table_name}.{entry.left_column_name}",
                    "right": f"{entry.right_table_name}.{entry.right_column_name}",
                    "join_type": entry.join_type,
                    "usage_count": entry.usage_count,
                },
                format,
            )
    except typer.BadParameter:
        raise
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@joins_app.command("list")
def joins_list(
    source: Annotated[
        str | None, typer.Option("--source", "-s", help="Only joins touching this source.")
    ] = None,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """List remembered joins, most used first."""
    try:
        with get_session() as session:
            source_id = SourceService(session).get_source(source).id if source else None
            entries = JoinService(session).list_joins(source_id)
            result = [
                {
                    "id": e.id,
                    "left_data_source_id": e.left_data_source_id,
                    "left": f"{e.left_table_name}.{e.left_column_name}",
                    "right_data_source_id": e.right_data_source_id,
                    "right": f"{e.right_table_name}.{e.right_column_name}",
                    "join_type": e.join_type,
                    "usage_count": e.usage_count,
                }
                for e in entries
            ]
            output_result(result, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Query commands
# =============================================================================


@query_app.command("compile")
def query_compile(
    descriptor_file: Annotated[
        Path, typer.Argument(help="Query descriptor file (JSON or YAML).")
    ],
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Compile a query descriptor and show the native queries."""
    try:
        descriptor = _load_descriptor(descriptor_file)
        with get_session() as session:
            plan = QueryService(session).compile(descriptor)

            if isinstance(plan, SingleSourcePlan):
                queries = [
                    {"data_source_id": plan.data_source_id, "query": plan.native_query.describe()}
                ]
            else:
                queries = [
                    {
                        "data_source_id": f.data_source_id,
                        "fragment": f.fragment_id,
                        "query": f.native_query.describe(),
                    }
                    for f in plan.fragments
                ]

            if format == OutputFormat.json:
                output_result({"kind": plan.kind, "queries": queries, "plan": plan}, format)
            else:
                output_result(queries, format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


@query_app.command("run")
def query_run(
    descriptor_file: Annotated[
        Path, typer.Argument(help="Query descriptor file (JSON or YAML).")
    ],
    tenant: Annotated[
        str | None, typer.Option("--tenant", help="Tenant whose row limit applies.")
    ] = None,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """Compile and execute a query descriptor."""
    try:
        descriptor = _load_descriptor(descriptor_file)
        with get_session() as session:
            result = QueryService(session).compile_and_execute(descriptor, tenant)

            if format == OutputFormat.json:
                output_result(result.model_dump(), format)
            else:
                output_result(result.rows, format)
                if result.truncated:
                    err_console.print(
                        f"[yellow]Result truncated to {result.row_count} rows.[/yellow]"
                    )
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


# =============================================================================
# Adapter commands
# =============================================================================


@adapters_app.command("list")
def adapters_list(
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.json,
) -> None:
    """List available adapter types."""
    try:
        with get_session() as session:
            output_result(SourceService(session).get_available_adapters(), format)
    except Exception as e:
        code = handle_error(e)
        raise typer.Exit(code) from None


if __name__ == "__main__":
    app()
