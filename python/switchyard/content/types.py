"""Content strategy types shared by the selector and its collaborators."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from fastapi import FastAPI

from switchyard.errors import DevToolingFatalError

if TYPE_CHECKING:
    from switchyard.content.dev_server import DevServerProxy

# Name carried by the single route that answers everything not matched earlier
CATCH_ALL_ROUTE_NAME = "content_catch_all"

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

FatalListener = Callable[[DevToolingFatalError], None]


class ContentStrategy(str, Enum):
    """How non-API paths are served."""

    STATIC = "static"
    DEV_SERVER = "dev_server"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True)
class MountedContent:
    """The catch-all that was mounted, plus the resource it holds (if any)."""

    strategy: ContentStrategy
    dev_proxy: "DevServerProxy | None" = None

    async def aclose(self) -> None:
        """Release the dev server client, if one was opened."""
        if self.dev_proxy is not None:
            await self.dev_proxy.aclose()


def catch_all_routes(app: FastAPI) -> list:
    """Return the content catch-all routes attached to an application."""
    return [
        route
        for route in app.router.routes
        if getattr(route, "name", None) == CATCH_ALL_ROUTE_NAME
    ]
