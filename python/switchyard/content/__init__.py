"""Content serving for non-API paths: dev server, static build, or placeholder."""

from switchyard.content.strategy import select_content_strategy
from switchyard.content.types import (
    CATCH_ALL_ROUTE_NAME,
    ContentStrategy,
    MountedContent,
    catch_all_routes,
)

__all__ = [
    "CATCH_ALL_ROUTE_NAME",
    "ContentStrategy",
    "MountedContent",
    "catch_all_routes",
    "select_content_strategy",
]
