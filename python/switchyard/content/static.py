"""Static serving of the prebuilt frontend.

Files are served from the build directory; any path that does not name a
file falls back to index.html so client-side routes resolve.
"""

from pathlib import Path

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response
from starlette.staticfiles import StaticFiles
from starlette.types import Scope

from switchyard.content.types import CATCH_ALL_ROUTE_NAME
from switchyard.errors import StaticDirectoryMissingError


class SPAStaticFiles(StaticFiles):
    """StaticFiles that answers unknown paths with index.html."""

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


def serve_static(app: FastAPI, directory: Path) -> None:
    """Mount the build directory as the catch-all.

    Args:
        app: The application handle.
        directory: The prebuilt asset directory.

    Raises:
        StaticDirectoryMissingError: If the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise StaticDirectoryMissingError(
            f"Could not find the build directory: {directory}, make sure to build the client first"
        )

    app.mount("/", SPAStaticFiles(directory=directory, html=True), name=CATCH_ALL_ROUTE_NAME)
