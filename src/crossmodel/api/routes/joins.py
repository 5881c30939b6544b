"""Join discovery and join catalog endpoints."""

from fastapi import APIRouter, status

from crossmodel.api.dependencies import JoinServiceDep
from crossmodel.api.schemas import JoinSuggestRequest
from crossmodel.core.models import JoinCatalogEntryResponse, JoinDefinition, JoinSuggestion

router = APIRouter(prefix="/joins", tags=["joins"])


@router.post("/suggestions", response_model=list[JoinSuggestion])
def suggest_joins(request: JoinSuggestRequest, join_service: JoinServiceDep) -> list[JoinSuggestion]:
    """Rank join-key candidates between two tables.

    Returns an empty list when either table cannot be read.
    """
    return join_service.suggestions(request.left, request.right)


@router.post(
    "/catalog",
    response_model=JoinCatalogEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def save_join(definition: JoinDefinition, join_service: JoinServiceDep) -> JoinCatalogEntryResponse:
    """Record a confirmed join; saving a known join increments its usage count.

    Raises:
        404: If a data source, table or column does not exist.
    """
    entry = join_service.save_join(definition)
    return JoinCatalogEntryResponse.model_validate(entry)


@router.get("/catalog", response_model=list[JoinCatalogEntryResponse])
def list_joins(
    join_service: JoinServiceDep,
    data_source_id: int | None = None,
) -> list[JoinCatalogEntryResponse]:
    return [
        JoinCatalogEntryResponse.model_validate(entry)
        for entry in join_service.list_joins(data_source_id)
    ]
