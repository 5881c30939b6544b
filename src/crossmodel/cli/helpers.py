"""CLI helper functions for session management and error handling."""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from rich.console import Console
from sqlalchemy.orm import Session

from crossmodel.core.adapters import AdapterError, AdapterNotFoundError
from crossmodel.core.database import init_database, session_scope
from crossmodel.core.query.exceptions import (
    CompilationError,
    MergeSemanticsError,
    PartialExecutionFailure,
    QueryEngineError,
)
from crossmodel.core.services import (
    ConfigLoadError,
    SourceExistsError,
    SourceNotFoundError,
    TableNotFoundError,
)

err_console = Console(stderr=True)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session, initializing the database if needed.

    This context manager:
    - Ensures the database is initialized (tables created)
    - Provides a session that auto-commits on success
    - Rolls back on exception

    Yields:
        SQLAlchemy Session instance.
    """
    init_database()

    with session_scope() as session:
        yield session


def handle_error(error: Exception) -> int:
    """Handle an exception and print appropriate error message.

    Args:
        error: The exception to handle.

    Returns:
        Exit code (1 for handled errors, 2 for unexpected errors).
    """
    if isinstance(error, SourceNotFoundError):
        err_console.print(f"[red]Error:[/red] Data source not found: {error.name!r}")
        err_console.print("[dim]Run 'crossmodel source list' to see available sources.[/dim]")
        return 1

    elif isinstance(error, SourceExistsError):
        err_console.print(f"[red]Error:[/red] Data source already exists: {error.name!r}")
        return 1

    elif isinstance(error, TableNotFoundError):
        err_console.print(f"[red]Error:[/red] {error}")
        return 1

    elif isinstance(error, AdapterNotFoundError):
        err_console.print(f"[red]Error:[/red] Unknown source type: {error.source_type!r}")
        # Import here to avoid circular imports
        from crossmodel.core.adapters import AdapterRegistry

        available = AdapterRegistry.available_types()
        if available:
            err_console.print(f"[dim]Available types: {', '.join(available)}[/dim]")
        return 1

    elif isinstance(error, AdapterError):
        err_console.print(f"[red]Error:[/red] {error}")
        return 1

    elif isinstance(error, ConfigLoadError):
        err_console.print(f"[red]Configuration error:[/red] {error}")
        return 1

    elif isinstance(error, CompilationError):
        err_console.print(f"[red]Compilation error:[/red] {error.message}")
        return 1

    elif isinstance(error, MergeSemanticsError):
        err_console.print(f"[red]Unsupported join semantics:[/red] {error}")
        return 1

    elif isinstance(error, PartialExecutionFailure):
        err_console.print(f"[red]Execution failed:[/red] {error}")
        return 1

    elif isinstance(error, QueryEngineError):
        err_console.print(f"[red]Query error:[/red] {error}")
        return 1

    elif isinstance(error, FileNotFoundError):
        err_console.print(f"[red]Error:[/red] File not found: {error.filename}")
        return 1

    else:
        err_console.print(f"[red]Unexpected error:[/red] {error}")
        err_console.print("[dim]This may be a bug. Please report it.[/dim]")
        return 2


def serialize_for_json(obj: Any) -> Any:
    """Serialize an object to JSON-compatible format.

    Handles datetime, Decimal and pydantic objects.

    Args:
        obj: Object to serialize.

    Returns:
        JSON-serializable object.
    """
    if isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        # Integral decimals stay integers in JSON
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, bytes):
        return obj.hex()
    elif hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    elif isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    else:
        return obj
