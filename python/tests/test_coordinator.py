"""Tests for the initialization coordinator.

Tests cover:
- Single admission: N concurrent callers, one wiring
- Wiring order (routes, API fall-through, content, error handlers last)
- Retry failure policy: rollback, NOT_STARTED, InitializationError to all waiters
- Cancelled callers never cancel the shared wiring
"""

import asyncio
from functools import partial

import pytest
from fastapi import FastAPI
from structlog.testing import capture_logs

from switchyard.app import create_app
from switchyard.content import (
    ContentStrategy,
    MountedContent,
    catch_all_routes,
    select_content_strategy,
)
from switchyard.coordinator import API_FALLTHROUGH_ROUTE_NAME, InitializationCoordinator, InitState
from switchyard.errors import InitializationError
from switchyard.responses import install_error_handlers
from tests.helpers import make_settings


def make_coordinator(register_routes=None, mount_content=None, install=None):
    settings = make_settings()
    app = create_app(settings)
    coordinator = InitializationCoordinator(
        app,
        register_routes=register_routes or (lambda app: None),
        mount_content=mount_content or partial(select_content_strategy, settings=settings),
        install_error_handlers=install or install_error_handlers,
        api_prefix=settings.api_prefix,
    )
    return app, coordinator


def route_paths(app: FastAPI) -> list[str]:
    return [getattr(route, "path", None) for route in app.router.routes]


class TestSingleAdmission:
    """Wiring runs once no matter how many callers arrive."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_wiring(self):
        """20 concurrent callers -> register_routes called exactly once."""
        calls = []

        async def register_routes(app):
            calls.append(app)
            await asyncio.sleep(0.01)

        _, coordinator = make_coordinator(register_routes=register_routes)

        await asyncio.gather(*(coordinator.ensure_initialized() for _ in range(20)))

        assert len(calls) == 1
        assert coordinator.state is InitState.COMPLETE
        assert coordinator.is_ready is True

    @pytest.mark.asyncio
    async def test_complete_is_terminal(self):
        """Calls after completion return without rewiring."""
        calls = []
        _, coordinator = make_coordinator(register_routes=calls.append)

        await coordinator.ensure_initialized()
        await coordinator.ensure_initialized()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_in_progress_while_wiring(self):
        release = asyncio.Event()

        async def register_routes(app):
            await release.wait()

        _, coordinator = make_coordinator(register_routes=register_routes)
        assert coordinator.state is InitState.NOT_STARTED

        waiter = asyncio.ensure_future(coordinator.ensure_initialized())
        await asyncio.sleep(0)
        assert coordinator.state is InitState.IN_PROGRESS

        release.set()
        await waiter
        assert coordinator.state is InitState.COMPLETE

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_wiring(self):
        release = asyncio.Event()
        calls = []

        async def register_routes(app):
            calls.append(app)
            await release.wait()

        _, coordinator = make_coordinator(register_routes=register_routes)

        first = asyncio.ensure_future(coordinator.ensure_initialized())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        assert coordinator.state is InitState.IN_PROGRESS

        release.set()
        await coordinator.ensure_initialized()

        assert coordinator.state is InitState.COMPLETE
        assert len(calls) == 1


class TestWiringOrder:
    """Routes first, content catch-all after, error handlers last."""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self):
        steps = []
        settings = make_settings()

        def register_routes(app):
            steps.append("routes")

        async def mount_content(app):
            steps.append("content")
            return await select_content_strategy(app, settings)

        def install(app):
            steps.append("error_handlers")
            install_error_handlers(app)

        _, coordinator = make_coordinator(register_routes, mount_content, install)
        await coordinator.ensure_initialized()

        assert steps == ["routes", "content", "error_handlers"]

    @pytest.mark.asyncio
    async def test_routes_precede_catch_all(self):
        def register_routes(app):
            app.add_api_route("/api/things", lambda: [], methods=["GET"])

        app, coordinator = make_coordinator(register_routes=register_routes)
        await coordinator.ensure_initialized()

        names = [getattr(route, "name", None) for route in app.router.routes]
        paths = route_paths(app)
        catch_all_index = names.index("content_catch_all")
        assert paths.index("/api/things") < catch_all_index
        assert names.index(API_FALLTHROUGH_ROUTE_NAME) < catch_all_index
        assert len(catch_all_routes(app)) == 1

    @pytest.mark.asyncio
    async def test_error_handlers_installed(self):
        app, coordinator = make_coordinator()
        assert Exception not in app.exception_handlers

        await coordinator.ensure_initialized()

        assert Exception in app.exception_handlers

    @pytest.mark.asyncio
    async def test_records_content_strategy(self):
        _, coordinator = make_coordinator()
        assert coordinator.content is None

        with capture_logs() as logs:
            await coordinator.ensure_initialized()

        assert coordinator.content.strategy is ContentStrategy.PLACEHOLDER
        initialized = [e for e in logs if e["event"] == "app_initialized"]
        assert len(initialized) == 1
        assert initialized[0]["content_strategy"] == "placeholder"
        assert initialized[0]["duration_ms"] >= 0


class TestFailurePolicy:
    """A failed attempt is rolled back and retried by the next caller."""

    @pytest.mark.asyncio
    async def test_failure_rolls_back_and_retries(self):
        attempts = 0

        def register_routes(app):
            nonlocal attempts
            attempts += 1
            app.add_api_route("/api/partial", lambda: {}, methods=["GET"])
            if attempts == 1:
                raise RuntimeError("database not ready")

        app, coordinator = make_coordinator(register_routes=register_routes)
        routes_before = route_paths(app)
        handlers_before = dict(app.exception_handlers)

        with capture_logs() as logs:
            with pytest.raises(InitializationError, match="Failed to initialize app"):
                await coordinator.ensure_initialized()

        assert coordinator.state is InitState.NOT_STARTED
        assert route_paths(app) == routes_before
        assert app.exception_handlers == handlers_before
        assert catch_all_routes(app) == []
        failures = [e for e in logs if e["event"] == "app_initialization_failed"]
        assert len(failures) == 1
        assert failures[0]["log_level"] == "error"

        await coordinator.ensure_initialized()

        assert attempts == 2
        assert coordinator.state is InitState.COMPLETE
        assert route_paths(app).count("/api/partial") == 1
        assert len(catch_all_routes(app)) == 1

    @pytest.mark.asyncio
    async def test_all_waiters_get_the_failure(self):
        async def register_routes(app):
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        _, coordinator = make_coordinator(register_routes=register_routes)

        results = await asyncio.gather(
            *(coordinator.ensure_initialized() for _ in range(5)),
            return_exceptions=True,
        )

        assert all(isinstance(result, InitializationError) for result in results)
        assert coordinator.state is InitState.NOT_STARTED

    @pytest.mark.asyncio
    async def test_content_failure_closes_opened_resource(self):
        """A failure after content was mounted releases the content resource."""
        closed = []

        class Content:
            strategy = ContentStrategy.DEV_SERVER

            async def aclose(self):
                closed.append(True)

        async def mount_content(app):
            return Content()

        def install(app):
            raise RuntimeError("handlers refused")

        _, coordinator = make_coordinator(mount_content=mount_content, install=install)

        with pytest.raises(InitializationError):
            await coordinator.ensure_initialized()

        assert closed == [True]
        assert coordinator.content is None

    @pytest.mark.asyncio
    async def test_failing_close_still_resets_for_retry(self):
        """Cleanup that raises is logged; the attempt still fails cleanly and can retry."""
        attempts = 0

        class BrokenProxy:
            async def aclose(self):
                raise RuntimeError("proxy already torn down")

        async def mount_content(app):
            return MountedContent(ContentStrategy.DEV_SERVER, dev_proxy=BrokenProxy())

        def install(app):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("handlers refused")
            install_error_handlers(app)

        app, coordinator = make_coordinator(mount_content=mount_content, install=install)
        routes_before = route_paths(app)

        with capture_logs() as logs:
            with pytest.raises(InitializationError):
                await coordinator.ensure_initialized()

        assert coordinator.state is InitState.NOT_STARTED
        assert route_paths(app) == routes_before
        close_failures = [e for e in logs if e["event"] == "content_close_failed"]
        assert len(close_failures) == 1
        assert close_failures[0]["log_level"] == "warning"

        await coordinator.ensure_initialized()

        assert attempts == 2
        assert coordinator.state is InitState.COMPLETE

    @pytest.mark.asyncio
    async def test_error_is_chained(self):
        def register_routes(app):
            raise ValueError("bad route table")

        _, coordinator = make_coordinator(register_routes=register_routes)

        with pytest.raises(InitializationError) as exc_info:
            await coordinator.ensure_initialized()

        assert isinstance(exc_info.value.__cause__, ValueError)
