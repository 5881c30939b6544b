"""Adapter type listing."""

from typing import Any

from fastapi import APIRouter

from crossmodel.api.dependencies import SourceServiceDep

router = APIRouter(prefix="/adapters", tags=["adapters"])


@router.get("")
def list_adapters(source_service: SourceServiceDep) -> list[dict[str, Any]]:
    """List registered adapter types with the query dialect each one speaks."""
    return source_service.get_available_adapters()
