"""FastAPI application handle creation.

create_app() builds the single Application Handle shared by every component.
Only process-level middleware is attached here; routes, the content
catch-all and the exception handlers are attached later, exactly once, by
the InitializationCoordinator.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- SecurityHeadersMiddleware is added LAST so it runs FIRST (outermost inside
  the handle) and decorates every response, error responses included

Actual execution order per request (outside the handle, see bootstrap.py):
1. ResponseObserverMiddleware (request id, timer, response capture)
2. Initialization gate (awaits ensure_initialized)
3. SecurityHeadersMiddleware
4. Malformed JSON guard
5. Route handler / content catch-all
"""

import json

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from switchyard.config import Settings, get_settings
from switchyard.logging import get_logger
from switchyard.middleware.security_headers import SecurityHeadersMiddleware
from switchyard.responses import error_response

logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the application handle.

    Args:
        settings: Runtime configuration (defaults to the cached environment settings).

    Returns:
        FastAPI instance with process-level middleware attached and settings
        available on app.state.settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Switchyard",
        description="Dual-mode HTTP application bootstrap",
        version="0.1.0",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=None,
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings

    # Handle JSON decode errors from malformed JSON bodies
    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Reject malformed JSON bodies before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response("Malformed JSON body"),
                        )
        return await call_next(request)

    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)

    logger.info("app_created", env=settings.app_env.value)
    return app
