"""Exception handlers for the API layer."""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crossmodel.api.schemas import ErrorResponse
from crossmodel.core.adapters.exceptions import (
    AdapterConfigurationError,
    AdapterError,
    AdapterNotFoundError,
)
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


def _error(
    status_code: int,
    error: str,
    message: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, detail=detail).model_dump(),
    )


async def source_not_found_handler(request: Request, exc: SourceNotFoundError) -> JSONResponse:
    return _error(404, "source_not_found", str(exc), {"source_name": exc.name})


async def source_exists_handler(request: Request, exc: SourceExistsError) -> JSONResponse:
    return _error(409, "source_exists", str(exc), {"source_name": exc.name})


async def table_not_found_handler(request: Request, exc: TableNotFoundError) -> JSONResponse:
    return _error(
        404,
        "table_not_found",
        str(exc),
        {
            "data_source_id": exc.data_source_id,
            "table_name": exc.table_name,
            "column_name": exc.column_name,
        },
    )


async def adapter_not_found_handler(request: Request, exc: AdapterNotFoundError) -> JSONResponse:
    return _error(400, "invalid_source_type", str(exc), {"source_type": exc.source_type})


async def adapter_configuration_handler(
    request: Request, exc: AdapterConfigurationError
) -> JSONResponse:
    return _error(422, "invalid_configuration", exc.message, {"source_type": exc.source_type})


async def adapter_error_handler(request: Request, exc: AdapterError) -> JSONResponse:
    """Upstream data source failures."""
    detail = {
        key: value
        for key, value in (("source_type", exc.source_type), ("source_id", exc.source_id))
        if value is not None
    }
    return _error(502, "adapter_error", str(exc), detail or None)


async def config_load_handler(request: Request, exc: ConfigLoadError) -> JSONResponse:
    return _error(400, "invalid_config_file", str(exc))


async def compilation_error_handler(request: Request, exc: CompilationError) -> JSONResponse:
    return _error(
        422,
        "compilation_error",
        exc.message,
        {
            "table": exc.table,
            "column": exc.column,
            "data_source_id": exc.data_source_id,
        },
    )


async def merge_semantics_handler(request: Request, exc: MergeSemanticsError) -> JSONResponse:
    return _error(422, "merge_semantics_error", str(exc))


async def partial_execution_handler(
    request: Request, exc: PartialExecutionFailure
) -> JSONResponse:
    """A federated sub-query failed; nothing was merged."""
    return _error(
        502,
        "partial_execution_failure",
        str(exc),
        {"source_id": exc.source_id, "cause": type(exc.cause).__name__},
    )


async def query_engine_handler(request: Request, exc: QueryEngineError) -> JSONResponse:
    return _error(422, "query_error", str(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""
    app.add_exception_handler(SourceNotFoundError, source_not_found_handler)
    app.add_exception_handler(SourceExistsError, source_exists_handler)
    app.add_exception_handler(TableNotFoundError, table_not_found_handler)
    app.add_exception_handler(AdapterNotFoundError, adapter_not_found_handler)
    app.add_exception_handler(AdapterConfigurationError, adapter_configuration_handler)
    app.add_exception_handler(AdapterError, adapter_error_handler)
    app.add_exception_handler(ConfigLoadError, config_load_handler)
    # Query engine
    app.add_exception_handler(CompilationError, compilation_error_handler)
    app.add_exception_handler(MergeSemanticsError, merge_semantics_handler)
    app.add_exception_handler(PartialExecutionFailure, partial_execution_handler)
    app.add_exception_handler(QueryEngineError, query_engine_handler)
