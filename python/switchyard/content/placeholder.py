"""Minimal placeholder page used when no frontend can be served."""

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from switchyard.content.types import ALL_METHODS, CATCH_ALL_ROUTE_NAME

PLACEHOLDER_HTML = (
    '<!doctype html><html><head><meta charset="utf-8"><title>Backend</title></head>'
    "<body><h1>Backend API</h1></body></html>"
)


async def placeholder_page() -> HTMLResponse:
    """Answer any request with the placeholder page."""
    return HTMLResponse(PLACEHOLDER_HTML, status_code=200)


def mount_placeholder(app: FastAPI) -> None:
    """Attach the placeholder page as the catch-all."""
    app.add_api_route(
        "/{path:path}",
        placeholder_page,
        methods=ALL_METHODS,
        include_in_schema=False,
        name=CATCH_ALL_ROUTE_NAME,
    )
