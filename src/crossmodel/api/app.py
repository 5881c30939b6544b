"""FastAPI application factory and configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crossmodel import __version__
from crossmodel.api.exceptions import register_exception_handlers
from crossmodel.api.routes import (
    adapters_router,
    health_router,
    joins_router,
    queries_router,
    sources_router,
)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="crossmodel API",
        description="Cross-source query compilation, federation and join discovery",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(adapters_router, prefix="/api/v1")
    app.include_router(sources_router, prefix="/api/v1")
    app.include_router(joins_router, prefix="/api/v1")
    app.include_router(queries_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
