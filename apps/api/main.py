"""Thin launcher.

All application logic lives in the switchyard package.

Serverless hosts import this module and use:
- `app`: ASGI callable (e.g. Vercel's Python runtime)
- `handler`: proxy-event function (API gateway payload v1/v2)

Importing never binds a socket.

Standalone:
    python -m apps.api.main

Note: The bootstrap is created here (not in switchyard) to avoid import-time
side effects. This allows tests to import the package without the
environment being configured.
"""

from switchyard import ServerlessHandler, create_bootstrap, serve
from switchyard.config import get_settings
from switchyard.logging import configure_logging

settings = get_settings()
configure_logging(json_format=settings.json_logs)

bootstrap = create_bootstrap(settings)
app = ServerlessHandler(bootstrap)
handler = app.handle


def main() -> None:
    """Run the transport selected from the environment."""
    serve(bootstrap)


if __name__ == "__main__":
    main()

__all__ = ["app", "handler", "main"]
