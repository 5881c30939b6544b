"""API route modules."""

from crossmodel.api.routes.adapters import router as adapters_router
from crossmodel.api.routes.health import router as health_router
from crossmodel.api.routes.joins import router as joins_router
from crossmodel.api.routes.queries import router as queries_router
from crossmodel.api.routes.sources import router as sources_router

__all__ = [
    "adapters_router",
    "health_router",
    "joins_router",
    "queries_router",
    "sources_router",
]
