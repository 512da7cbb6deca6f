from fastapi import FastAPI

from .api import linear_cache, linear_sync
from .core.config import settings
from .services import history_service


def create_app() -> FastAPI:
    """Factory to create the FastAPI application instance."""
    # Importing the history service registers its flush listener
    _history_service_initialized = history_service

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Historical cache and change review for Linear projects and issues.",
        version="0.1.0",
    )

    @app.get("/", tags=["Root"])
    def read_root():
        """Provides a simple health check response."""
        return {"status": "ok", "project_name": settings.PROJECT_NAME}

    # Routers expect a base64url workspace_id in their path
    app.include_router(linear_cache.router)
    app.include_router(linear_sync.router)

    return app
