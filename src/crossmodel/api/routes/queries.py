"""Query compilation and execution endpoints."""

from fastapi import APIRouter

from crossmodel.api.dependencies import QueryServiceDep
from crossmodel.api.schemas import CompileResponse, QueryRequest
from crossmodel.core.models import QueryDescriptor, TabularResult
from crossmodel.core.query.plan import SingleSourcePlan

router = APIRouter(prefix="/queries", tags=["queries"])


@router.post("/compile", response_model=CompileResponse)
def compile_query(descriptor: QueryDescriptor, query_service: QueryServiceDep) -> CompileResponse:
    """Compile a descriptor without executing it.

    Raises:
        422: If the descriptor cannot be compiled.
    """
    plan = query_service.compile(descriptor)
    if isinstance(plan, SingleSourcePlan):
        native = [plan.native_query.describe()]
    else:
        native = [fragment.native_query.describe() for fragment in plan.fragments]
    return CompileResponse(plan=plan, native_queries=native)


@router.post("/execute", response_model=TabularResult)
def execute_query(request: QueryRequest, query_service: QueryServiceDep) -> TabularResult:
    """Compile and execute a descriptor under the tenant's row limit.

    Raises:
        422: If the descriptor cannot be compiled or merged.
        502: If a data source fails.
    """
    return query_service.compile_and_execute(request.descriptor, request.tenant_id)
