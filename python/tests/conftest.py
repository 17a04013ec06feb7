"""Pytest configuration and fixtures for Switchyard tests.

Test isolation strategy:
- Logging is configured once, console format, with logger caching off so
  structlog.testing.capture_logs sees every module logger
- Settings env vars are cleared per test; tests build Settings explicitly
- Bootstraps are created per test: wiring happens at most once per instance
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient

from switchyard.bootstrap import Bootstrap
from switchyard.config import clear_settings_cache
from switchyard.logging import clear_request_context, configure_logging
from tests.helpers import SETTINGS_ENV_VARS, make_bootstrap


@pytest.fixture(scope="session", autouse=True)
def configure_test_logging() -> None:
    """Console logs, uncached loggers."""
    configure_logging(json_format=False, cache_loggers=False)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear settings env vars and cached settings around every test."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_request_context()


@pytest.fixture
def bootstrap() -> Bootstrap:
    """Provide a development bootstrap serving the placeholder page.

    Uses the built-in API routes; nothing is wired until the first request.
    """
    return make_bootstrap()


@pytest.fixture
def client(bootstrap: Bootstrap) -> TestClient:
    """Provide a test client for the default bootstrap.

    Lifespan events are not sent, so wiring happens on the first request.
    Server exceptions are not re-raised: the terminal handler answers them.
    """
    return TestClient(bootstrap, raise_server_exceptions=False)
