"""Content strategy selection.

Decides, once per process, how non-API paths are served:

| condition                                        | strategy    |
|--------------------------------------------------|-------------|
| production, static dir exists                    | STATIC      |
| production, static dir missing                   | PLACEHOLDER |
| development, dev server mounted                  | DEV_SERVER  |
| development, dev server skipped or failed        | PLACEHOLDER |

Exactly one catch-all is mounted. Mount failures are logged as warnings and
degrade to the placeholder page; they never abort initialization.

Must run after the routes are registered so the catch-all cannot shadow them.
"""

from collections.abc import Awaitable, Callable
from pathlib import Path

from fastapi import FastAPI

from switchyard.config import Settings
from switchyard.content.dev_server import DevServerProxy
from switchyard.content.dev_server import setup_dev_middleware as default_setup_dev_middleware
from switchyard.content.placeholder import mount_placeholder
from switchyard.content.static import serve_static as default_serve_static
from switchyard.content.types import ContentStrategy, FatalListener, MountedContent
from switchyard.logging import get_logger

logger = get_logger(__name__)

StaticServer = Callable[[FastAPI, Path], None]
DevMiddlewareSetup = Callable[..., Awaitable[DevServerProxy]]


async def select_content_strategy(
    app: FastAPI,
    settings: Settings,
    *,
    setup_dev_middleware: DevMiddlewareSetup | None = None,
    serve_static: StaticServer | None = None,
    on_fatal: FatalListener | None = None,
) -> MountedContent:
    """Select and mount the content catch-all.

    Args:
        app: The application handle.
        settings: Runtime configuration.
        setup_dev_middleware: Dev server collaborator (defaults to the Vite proxy).
        serve_static: Static serving collaborator (defaults to SPAStaticFiles).
        on_fatal: Listener for dev tooling fatal faults.

    Returns:
        The mounted strategy.
    """
    setup_dev_middleware = setup_dev_middleware or default_setup_dev_middleware
    serve_static = serve_static or default_serve_static

    if settings.is_production:
        static_dir = settings.static_dir
        if static_dir.is_dir():
            serve_static(app, static_dir)
            logger.info("static_serving_mounted", static_dir=str(static_dir))
            return MountedContent(ContentStrategy.STATIC)

        logger.warning("static_dir_missing", static_dir=str(static_dir))

    elif not settings.skip_dev_server:
        routes_before = list(app.router.routes)
        try:
            proxy = await setup_dev_middleware(app, settings, on_fatal=on_fatal)
        except Exception as exc:
            # Leave no half-mounted dev routes behind the placeholder
            app.router.routes[:] = routes_before
            logger.warning(
                "dev_middleware_unavailable",
                error=str(exc),
                error_type=type(exc).__name__,
            )
        else:
            return MountedContent(ContentStrategy.DEV_SERVER, dev_proxy=proxy)

    mount_placeholder(app)
    logger.info("placeholder_mounted")
    return MountedContent(ContentStrategy.PLACEHOLDER)
