"""API-specific request/response schemas."""

from typing import Annotated, Any

from pydantic import BaseModel, Field

from crossmodel.core.models import QueryDescriptor, TableRef
from crossmodel.core.query.plan import FederatedPlan, SingleSourcePlan


class SourceCreateRequest(BaseModel):
    """Request schema for creating a data source via API."""

    name: str = Field(..., min_length=1, max_length=100, description="Unique source name")
    source_type: str = Field(..., description="Adapter type (e.g., 'postgresql')")
    connection_info: dict[str, Any] = Field(..., description="Connection configuration")
    display_name: str | None = Field(None, description="Human-readable display name")


class JoinSuggestRequest(BaseModel):
    """Two tables to propose join keys for."""

    left: TableRef
    right: TableRef


class QueryRequest(BaseModel):
    """A query descriptor, executed under a tenant's row limit."""

    descriptor: QueryDescriptor
    tenant_id: str | None = Field(None, description="Tenant whose row limit applies")


class CompileResponse(BaseModel):
    """A compiled plan, with the native queries it will dispatch."""

    plan: Annotated[SingleSourcePlan | FederatedPlan, Field(discriminator="kind")]
    native_queries: list[str] = Field(
        default_factory=list,
        description="Human-readable rendering of each native query",
    )


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    detail: dict[str, Any] | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
