"""Source management endpoints.

Handlers are plain functions: the services drive adapters with
``asyncio.run``, which needs a thread without a running event loop.
"""

from fastapi import APIRouter, status

from crossmodel.api.dependencies import SourceServiceDep
from crossmodel.api.schemas import SourceCreateRequest
from crossmodel.core.models import (
    ConnectionTestResult,
    DataSourceResponse,
    SchemaHashResult,
    TableMetadata,
)

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=list[DataSourceResponse])
def list_sources(
    source_service: SourceServiceDep,
    active_only: bool = False,
) -> list[DataSourceResponse]:
    """List all configured data sources."""
    sources = source_service.list_sources(active_only=active_only)
    return [DataSourceResponse.model_validate(s) for s in sources]


@router.post("", response_model=DataSourceResponse, status_code=status.HTTP_201_CREATED)
def create_source(
    request: SourceCreateRequest,
    source_service: SourceServiceDep,
) -> DataSourceResponse:
    """Create a new data source.

    Raises:
        409: If source with name already exists.
        400: If source_type is not a valid adapter type.
        422: If connection_info is invalid for the adapter.
    """
    source = source_service.add_source_from_dict(
        name=request.name,
        source_type=request.source_type,
        connection_info=request.connection_info,
        display_name=request.display_name,
    )
    return DataSourceResponse.model_validate(source)


@router.get("/{name}", response_model=DataSourceResponse)
def get_source(name: str, source_service: SourceServiceDep) -> DataSourceResponse:
    source = source_service.get_source(name)
    return DataSourceResponse.model_validate(source)


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_source(name: str, source_service: SourceServiceDep) -> None:
    """Delete a data source and its join catalog entries."""
    source_service.remove_source(name)


@router.post("/{name}/test", response_model=ConnectionTestResult)
def test_source(name: str, source_service: SourceServiceDep) -> ConnectionTestResult:
    return source_service.test_source(name)


@router.get("/{name}/tables", response_model=list[TableMetadata])
def list_tables(
    name: str,
    source_service: SourceServiceDep,
    schema: str | None = None,
) -> list[TableMetadata]:
    """Introspect the live tables of a data source.

    Raises:
        404: If source not found.
        502: If the source cannot be reached.
    """
    return source_service.list_tables(name, schema)


@router.get("/{name}/hash", response_model=SchemaHashResult)
def schema_hash(
    name: str,
    source_service: SourceServiceDep,
    schema: str | None = None,
    previous: str | None = None,
) -> SchemaHashResult:
    """Fingerprint a data source's structure.

    Pass ``previous`` to learn whether the structure changed since then.
    """
    return source_service.schema_hash(name, schema, previous)
