"""One-time, concurrency-safe wiring of the application handle.

State machine:
    NOT_STARTED --start--> IN_PROGRESS --success--> COMPLETE
                           IN_PROGRESS --failure--> NOT_STARTED  (retry)

Wiring sequence (runs at most once per successful initialization):
1. register_routes(app)
2. API fall-through: unknown API paths answer 404 JSON
3. mount_content(app): exactly one content catch-all
4. install_error_handlers(app): always last

Concurrency:
- Single event loop, cooperative scheduling; no locks.
- The first caller to observe NOT_STARTED starts one shared task; every caller
  arriving while IN_PROGRESS awaits that same task.
- Callers await through asyncio.shield: a cancelled request never cancels
  the shared wiring.
- No timeout: if a collaborator hangs, gated requests wait with it.

Failure policy (retry):
- The application is rolled back to its pre-wiring routes and exception
  handlers, any content resource opened during the attempt is closed, the
  state returns to NOT_STARTED and every waiter gets InitializationError.
- The next caller starts a fresh attempt.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from fastapi import FastAPI

from switchyard.content.types import MountedContent
from switchyard.errors import InitializationError, NotFoundError
from switchyard.logging import get_logger

logger = get_logger(__name__)

API_FALLTHROUGH_ROUTE_NAME = "api_fallthrough"
FALLTHROUGH_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

RouteRegistrar = Callable[[FastAPI], Any]
ContentMounter = Callable[[FastAPI], Awaitable[MountedContent]]
ErrorHandlerInstaller = Callable[[FastAPI], None]


class InitState(str, Enum):
    """Lifecycle of application wiring."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


async def api_not_found() -> None:
    """Answer API paths no route matched."""
    raise NotFoundError()


class InitializationCoordinator:
    """Guarantee the wiring sequence completes exactly once.

    Args:
        app: The application handle to wire.
        register_routes: Routing collaborator; may be sync or async.
        mount_content: Attaches the content catch-all.
        install_error_handlers: Attaches the terminal exception handlers.
        api_prefix: Prefix whose unmatched paths answer 404 JSON.
    """

    def __init__(
        self,
        app: FastAPI,
        *,
        register_routes: RouteRegistrar,
        mount_content: ContentMounter,
        install_error_handlers: ErrorHandlerInstaller,
        api_prefix: str = "/api",
    ):
        self.app = app
        self.register_routes = register_routes
        self.mount_content = mount_content
        self.install_error_handlers = install_error_handlers
        self.api_prefix = api_prefix

        self._state = InitState.NOT_STARTED
        self._pending: asyncio.Task | None = None
        self._content: MountedContent | None = None

    @property
    def state(self) -> InitState:
        """Current initialization state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Whether wiring has completed."""
        return self._state is InitState.COMPLETE

    @property
    def content(self) -> MountedContent | None:
        """The mounted content strategy, once complete."""
        return self._content

    async def ensure_initialized(self) -> None:
        """Wire the application, or wait for the wiring in flight.

        Returns immediately once COMPLETE.

        Raises:
            InitializationError: If this attempt failed (state is NOT_STARTED again).
        """
        if self._state is InitState.COMPLETE:
            return

        if self._pending is None:
            self._state = InitState.IN_PROGRESS
            self._pending = asyncio.ensure_future(self._wire())
            self._pending.add_done_callback(_mark_retrieved)

        await asyncio.shield(self._pending)

    async def _wire(self) -> None:
        routes_before = list(self.app.router.routes)
        handlers_before = dict(self.app.exception_handlers)
        content: MountedContent | None = None
        start_time = time.monotonic()

        try:
            result = self.register_routes(self.app)
            if inspect.isawaitable(result):
                await result

            for path in (self.api_prefix, f"{self.api_prefix}/{{path:path}}"):
                self.app.add_api_route(
                    path,
                    api_not_found,
                    methods=FALLTHROUGH_METHODS,
                    include_in_schema=False,
                    name=API_FALLTHROUGH_ROUTE_NAME,
                )

            content = await self.mount_content(self.app)
            self.install_error_handlers(self.app)

        except Exception as exc:
            self._state = InitState.NOT_STARTED
            self._pending = None

            self.app.router.routes[:] = routes_before
            self.app.exception_handlers.clear()
            self.app.exception_handlers.update(handlers_before)
            if content is not None:
                try:
                    await content.aclose()
                except Exception as close_exc:
                    logger.warning(
                        "content_close_failed",
                        error_type=type(close_exc).__name__,
                        exc_info=close_exc,
                    )

            logger.error(
                "app_initialization_failed",
                error_type=type(exc).__name__,
                exc_info=exc,
            )
            raise InitializationError("Failed to initialize app") from exc

        self._content = content
        self._state = InitState.COMPLETE
        self._pending = None
        logger.info(
            "app_initialized",
            content_strategy=content.strategy.value,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )


def _mark_retrieved(task: asyncio.Task) -> None:
    # Waiters may all be cancelled; keep asyncio from reporting the failure twice
    if not task.cancelled():
        task.exception()
