"""The outermost ASGI callable: observer, initialization gate, application handle.

Bootstrap composes the pieces every transport shares:

    ResponseObserverMiddleware -> gate -> FastAPI application handle

The gate:
- Handles the ASGI lifespan protocol itself. The application handle never
  sees lifespan events, so Starlette builds its middleware stack on the
  first request dispatched after wiring completed.
- Gates every HTTP and WebSocket request on ensure_initialized().
- Answers 500 {"message": "Failed to initialize app"} (HTTP) or closes with
  1011 (WebSocket) when wiring failed; the next request retries.

Lifespan:
- startup: when EAGER_INIT is set, wiring starts in the background; requests
  stay gated on it either way.
- shutdown: the dev server client (if any) is closed.

Fatal faults:
- Collaborators report DevToolingFatalError through report_fatal(); the
  first one is recorded on `fatal_fault` and handed to fatal listeners.
  Bootstrap never exits the process itself.
"""

import asyncio
from collections.abc import Callable
from functools import partial

from fastapi import FastAPI
from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

from switchyard.api.routes import register_routes as default_register_routes
from switchyard.app import create_app
from switchyard.config import Settings, get_settings
from switchyard.content import MountedContent, select_content_strategy
from switchyard.content.strategy import DevMiddlewareSetup, StaticServer
from switchyard.coordinator import InitializationCoordinator, RouteRegistrar
from switchyard.errors import DevToolingFatalError, InitializationError
from switchyard.logging import get_logger
from switchyard.middleware.observer import ResponseObserverMiddleware
from switchyard.responses import error_response, install_error_handlers

logger = get_logger(__name__)

INIT_FAILED_MESSAGE = "Failed to initialize app"


class Bootstrap:
    """Dual-mode application entry point.

    Args:
        settings: Runtime configuration (defaults to environment settings).
        register_routes: Routing collaborator (defaults to the built-in API routes).
        setup_dev_middleware: Dev server collaborator override.
        serve_static: Static serving collaborator override.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        register_routes: RouteRegistrar | None = None,
        setup_dev_middleware: DevMiddlewareSetup | None = None,
        serve_static: StaticServer | None = None,
    ):
        self.settings = settings or get_settings()
        self.app: FastAPI = create_app(self.settings)

        self.fatal_fault: DevToolingFatalError | None = None
        self._fatal_listeners: list[Callable[[DevToolingFatalError], None]] = []
        self._warmup: asyncio.Task | None = None

        mount_content = partial(
            select_content_strategy,
            settings=self.settings,
            setup_dev_middleware=setup_dev_middleware,
            serve_static=serve_static,
            on_fatal=self.report_fatal,
        )
        self.coordinator = InitializationCoordinator(
            self.app,
            register_routes=register_routes or default_register_routes,
            mount_content=mount_content,
            install_error_handlers=install_error_handlers,
            api_prefix=self.settings.api_prefix,
        )

        self._asgi = ResponseObserverMiddleware(
            self._dispatch,
            api_prefix=self.settings.api_prefix,
            max_body_bytes=self.settings.log_body_max_bytes,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._asgi(scope, receive, send)

    @property
    def content(self) -> MountedContent | None:
        """The mounted content strategy, once initialized."""
        return self.coordinator.content

    async def ensure_initialized(self) -> None:
        """Wire the application handle (see InitializationCoordinator)."""
        await self.coordinator.ensure_initialized()

    def add_fatal_listener(self, listener: Callable[[DevToolingFatalError], None]) -> None:
        """Register a callback for dev tooling fatal faults."""
        self._fatal_listeners.append(listener)

    def report_fatal(self, fault: DevToolingFatalError) -> None:
        """Record a fatal fault and notify listeners (first fault only)."""
        if self.fatal_fault is not None:
            return
        self.fatal_fault = fault
        logger.critical("dev_tooling_fatal", error=str(fault))
        for listener in self._fatal_listeners:
            listener(fault)

    async def _dispatch(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return

        try:
            await self.coordinator.ensure_initialized()
        except InitializationError:
            if scope["type"] == "http":
                response = JSONResponse(
                    status_code=500, content=error_response(INIT_FAILED_MESSAGE)
                )
                await response(scope, receive, send)
            else:
                await WebSocketClose(code=1011)(scope, receive, send)
            return

        await self.app(scope, receive, send)

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                if self.settings.eager_init and not self.coordinator.is_ready:
                    self._warmup = asyncio.ensure_future(self._warm_up())
                logger.info("lifespan_startup", eager_init=self.settings.eager_init)
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.aclose()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _warm_up(self) -> None:
        try:
            await self.coordinator.ensure_initialized()
        except InitializationError:
            # Already logged by the coordinator; the next request retries
            logger.warning("eager_initialization_failed")

    async def aclose(self) -> None:
        """Release resources held by the mounted content strategy."""
        if self._warmup is not None and not self._warmup.done():
            self._warmup.cancel()
        if self.coordinator.content is not None:
            await self.coordinator.content.aclose()
        logger.info("bootstrap_closed")


def create_bootstrap(
    settings: Settings | None = None,
    *,
    register_routes: RouteRegistrar | None = None,
    setup_dev_middleware: DevMiddlewareSetup | None = None,
    serve_static: StaticServer | None = None,
) -> Bootstrap:
    """Create the bootstrap for the current process.

    Does not configure logging: the launcher does that once.
    """
    return Bootstrap(
        settings,
        register_routes=register_routes,
        setup_dev_middleware=setup_dev_middleware,
        serve_static=serve_static,
    )
