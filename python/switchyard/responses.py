"""Error response helpers and the terminal exception handlers.

All error responses use one shape:
    { "message": "..." }

Handlers are installed by install_error_handlers() as the final step of
application wiring, after every route and the content catch-all, so they
observe faults from all of them.

Details of unexpected exceptions are logged server-side and never sent to
the client.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from switchyard.errors import ApiError
from switchyard.logging import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def error_response(message: str) -> dict[str, Any]:
    """Create an error response body.

    Args:
        message: Human-readable error message.

    Returns:
        Dict with a single "message" key.
    """
    return {"message": message}


def resolve_status_code(exc: BaseException) -> int:
    """Pick the HTTP status for an exception.

    Uses an explicit `status_code` or `status` attribute when it holds an
    error status (400-599), otherwise 500.
    """
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and 400 <= value <= 599:
            return value
    return 500


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions and return proper JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message),
    )


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette/FastAPI HTTPException and return proper JSON response."""
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors."""
    return JSONResponse(
        status_code=400,
        content=error_response("Invalid request body"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle any other exception.

    Client errors (explicit 4xx status) keep their message; everything else
    gets a generic message. The full exception is logged server-side.
    """
    status_code = resolve_status_code(exc)
    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        exc_info=exc,
    )

    message = str(exc) if status_code < 500 and str(exc) else INTERNAL_ERROR_MESSAGE
    return JSONResponse(
        status_code=status_code,
        content=error_response(message),
    )


def install_error_handlers(app: FastAPI) -> None:
    """Attach the terminal exception handlers to the application.

    Must run after everything else is attached: Starlette captures the
    handler table when it first builds its middleware stack.

    Raises:
        RuntimeError: If the application has already started dispatching.
    """
    if app.middleware_stack is not None:
        raise RuntimeError("Error handlers must be installed before the application dispatches")

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
