"""Development middleware backed by the frontend dev server (Vite).

The dev server keeps running as its own process; this module attaches a
catch-all that:
- Renders index.html for page navigations, re-read from disk on every
  request, with a cache-busting token on the entry script and the dev
  client + React refresh preamble injected into <head>
- Proxies every other request (modules, assets, /@vite/*) to the dev server

HMR websockets are not proxied: the browser connects to the dev server
directly (set `server.hmr.clientPort` in the Vite config).

Fault handling:
- Dev server unreachable at mount time -> DevServerUnavailableError (the
  selector falls back to the placeholder page)
- Upstream request errors -> DevServerError (502), forwarded to the error handler
- Connection lost after mount -> DevToolingFatalError, forwarded to the error
  handler AND reported once through `on_fatal`. The proxy never exits the
  process; the top-level bootstrap decides.
"""

import re
import secrets
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from switchyard.config import Settings
from switchyard.content.types import ALL_METHODS, CATCH_ALL_ROUTE_NAME, FatalListener
from switchyard.errors import DevServerError, DevServerUnavailableError, DevToolingFatalError
from switchyard.logging import get_logger

logger = get_logger(__name__)

DEV_CLIENT_PATH = "/@vite/client"

# Headers never copied between the browser and the dev server
EXCLUDED_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
        "content-encoding",
    }
)

REACT_REFRESH_PREAMBLE = """<script type="module">
import RefreshRuntime from "/@react-refresh"
RefreshRuntime.injectIntoGlobalHook(window)
window.$RefreshReg$ = () => {}
window.$RefreshSig$ = () => (type) => type
window.__vite_plugin_react_preamble_installed__ = true
</script>"""

HEAD_TAG_PATTERN = re.compile(r"<head[^>]*>", re.IGNORECASE)


def generate_cache_token() -> str:
    """Random URL-safe token used to bust the entry script cache."""
    return secrets.token_urlsafe(16)


def transform_index_html(template: str, entry: str, token: str) -> str:
    """Prepare the index.html template for the dev server.

    Args:
        template: Raw index.html contents.
        entry: The entry script src to cache-bust (e.g. "/src/main.tsx").
        token: Cache-busting token.

    Returns:
        The page to send to the browser.
    """
    page = template.replace(f'src="{entry}"', f'src="{entry}?v={token}"')
    injection = f'<script type="module" src="{DEV_CLIENT_PATH}"></script>{REACT_REFRESH_PREAMBLE}'

    match = HEAD_TAG_PATTERN.search(page)
    if match is None:
        return injection + page
    return page[: match.end()] + injection + page[match.end() :]


def wants_html(request: Request) -> bool:
    """Whether a request is a page navigation rather than a module/asset fetch."""
    if request.method not in ("GET", "HEAD"):
        return False
    if "text/html" not in request.headers.get("accept", ""):
        return False
    path = request.url.path
    if path.startswith("/@"):
        return False
    last_segment = path.rsplit("/", 1)[-1]
    return "." not in last_segment


class DevServerProxy:
    """Catch-all endpoint in front of the dev server.

    Args:
        client: httpx client with base_url set to the dev server.
        client_dir: Frontend source directory holding index.html.
        client_entry: Entry script src to cache-bust.
        on_fatal: Called once with the fault when the dev server goes away.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_dir: Path,
        client_entry: str = "/src/main.tsx",
        on_fatal: FatalListener | None = None,
    ):
        self.client = client
        self.client_dir = Path(client_dir)
        self.client_entry = client_entry
        self.on_fatal = on_fatal
        self._fatal_reported = False

    async def probe(self) -> None:
        """Check the dev server answers.

        Raises:
            DevServerUnavailableError: If it is unreachable or answers with an error.
        """
        try:
            response = await self.client.get(DEV_CLIENT_PATH)
        except httpx.HTTPError as exc:
            raise DevServerUnavailableError(
                f"Dev server unreachable at {self.client.base_url}: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise DevServerUnavailableError(
                f"Dev server at {self.client.base_url} answered {response.status_code}"
            )

    async def handle(self, request: Request) -> Response:
        """Serve one request through the dev server."""
        if wants_html(request):
            return await self.render_index()
        return await self.forward(request)

    async def render_index(self) -> HTMLResponse:
        """Render index.html, always reloaded from disk in case it changed."""
        template_path = self.client_dir / "index.html"
        template = await run_in_threadpool(template_path.read_text, encoding="utf-8")
        page = transform_index_html(template, self.client_entry, generate_cache_token())
        return HTMLResponse(page, status_code=200)

    async def forward(self, request: Request) -> Response:
        """Proxy a request to the dev server and relay its response."""
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"

        headers = [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in EXCLUDED_HEADERS
        ]
        body = await request.body()

        try:
            upstream = await self.client.request(
                request.method, target, headers=headers, content=body
            )
        except httpx.ConnectError as exc:
            fault = DevToolingFatalError(f"Lost connection to dev server at {self.client.base_url}")
            self.report_fatal(fault)
            raise fault from exc
        except httpx.HTTPError as exc:
            raise DevServerError(f"Dev server request failed: {exc}") from exc

        response = Response(content=upstream.content, status_code=upstream.status_code)
        for name, value in upstream.headers.multi_items():
            if name.lower() not in EXCLUDED_HEADERS:
                response.headers.append(name, value)
        return response

    def report_fatal(self, fault: DevToolingFatalError) -> None:
        """Hand the fault to the listener, once."""
        if self._fatal_reported:
            return
        self._fatal_reported = True
        if self.on_fatal is not None:
            self.on_fatal(fault)

    async def aclose(self) -> None:
        """Close the dev server client."""
        await self.client.aclose()


async def setup_dev_middleware(
    app: FastAPI,
    settings: Settings,
    *,
    on_fatal: FatalListener | None = None,
) -> DevServerProxy:
    """Probe the dev server and mount the proxy as the catch-all.

    Nothing is mounted when the probe fails.

    Raises:
        DevServerUnavailableError: If the dev server cannot be reached.
    """
    client = httpx.AsyncClient(
        base_url=settings.dev_server_url,
        timeout=httpx.Timeout(settings.dev_server_timeout_s, connect=5.0),
    )
    proxy = DevServerProxy(
        client,
        client_dir=settings.client_dir,
        client_entry=settings.client_entry,
        on_fatal=on_fatal,
    )

    try:
        await proxy.probe()
    except DevServerError:
        await client.aclose()
        raise

    app.add_api_route(
        "/{path:path}",
        proxy.handle,
        methods=ALL_METHODS,
        include_in_schema=False,
        name=CATCH_ALL_ROUTE_NAME,
    )
    logger.info("dev_middleware_mounted", dev_server_url=settings.dev_server_url)
    return proxy
