"""Test helpers for building settings, bootstraps and ASGI scopes.

Provides:
- Settings construction isolated from the process environment
- Bootstrap construction with injectable collaborators
- Fake dev server proxy and minimal ASGI plumbing for middleware tests
"""

from typing import Any

from switchyard.bootstrap import Bootstrap
from switchyard.config import Settings

DEV_SERVER_URL = "http://localhost:5173"

# Every env var the settings read; cleared so the host environment never leaks in
SETTINGS_ENV_VARS = (
    "VERCEL",
    "SERVERLESS",
    "APP_ENV",
    "NODE_ENV",
    "PORT",
    "RUN_STANDALONE",
    "SKIP_DEV_SERVER",
    "SKIP_VITE",
    "DEV_SERVER_URL",
    "DEV_SERVER_TIMEOUT_S",
    "CLIENT_DIR",
    "CLIENT_ENTRY",
    "STATIC_DIR",
    "API_PREFIX",
    "EAGER_INIT",
    "LOG_JSON",
    "LOG_BODY_MAX_BYTES",
)


def make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides.

    Defaults: development, dev server skipped, no eager initialization.
    Overrides use the environment variable names (e.g. STATIC_DIR=...).
    """
    defaults: dict[str, Any] = {
        "APP_ENV": "development",
        "SKIP_DEV_SERVER": True,
        "EAGER_INIT": False,
        "DEV_SERVER_URL": DEV_SERVER_URL,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def make_bootstrap(settings: Settings | None = None, **collaborators) -> Bootstrap:
    """Build a Bootstrap with test settings and optional collaborator overrides."""
    return Bootstrap(settings or make_settings(), **collaborators)


class FakeDevProxy:
    """Stands in for DevServerProxy where only its lifecycle matters."""

    def __init__(self):
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def http_scope(path: str = "/", method: str = "GET", headers=None) -> dict:
    """Minimal ASGI HTTP scope."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 12345),
        "server": ("testserver", 80),
    }


async def empty_receive() -> dict:
    return {"type": "http.request", "body": b"", "more_body": False}


class SentMessages(list):
    """ASGI send callable that records every message."""

    async def __call__(self, message: dict) -> None:
        self.append(message)
