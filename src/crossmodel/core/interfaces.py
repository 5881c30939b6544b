"""Collaborator interfaces consumed by the query engine and join services."""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from crossmodel.core.models.metadata import TableMetadata
    from crossmodel.core.query.plan import NativeQuery


@runtime_checkable
class SourceDriver(Protocol):
    """Fetch capability for configured data sources.

    Connections are owned by the implementation; callers only ask for
    metadata or rows by data source id.
    """

    async def introspect(self, source_id: int) -> list["TableMetadata"]:
        """Return fresh table metadata for a data source."""
        ...

    async def query(self, source_id: int, native_query: "NativeQuery") -> list[dict[str, Any]]:
        """Run a native query against a data source and return its rows."""
        ...


@runtime_checkable
class RowLimitProvider(Protocol):
    """Tenant subscription lookup for the maximum rows a query may return."""

    def row_limit(self, tenant_id: str | int | None) -> int:
        """Return the tenant's row limit, or -1 for unlimited."""
        ...
