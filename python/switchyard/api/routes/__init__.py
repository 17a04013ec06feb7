"""Default routing collaborator.

register_routes() is the routing collaborator the bootstrap uses unless
another one is injected: it receives the application handle, attaches its
routes under the API prefix and returns.
"""

from fastapi import APIRouter, FastAPI

from switchyard.api.routes.health import router as health_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        APIRouter with all default routes included.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    return api_router


def register_routes(app: FastAPI) -> None:
    """Attach the default API routes under the configured prefix."""
    app.include_router(create_api_router(), prefix=app.state.settings.api_prefix)


__all__ = ["create_api_router", "register_routes"]
