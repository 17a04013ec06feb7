"""Transport selection: standalone listener or serverless handler.

Standalone:
- Selected when RUN_STANDALONE is set or the serverless flag is absent
- uvicorn binds HOST:PORT and serves the Bootstrap until stopped
- A dev tooling fatal fault stops the server; the process exits with status 1

Serverless:
- Selected when the serverless flag is set and standalone is not forced
- Nothing is bound; the host imports ServerlessHandler and invokes it per request:
  - ASGI hosts call it directly (handler(scope, receive, send))
  - Proxy-event hosts (API gateway payload v1/v2) call handler.handle(event, context)

Constructing a ServerlessHandler has no side effects, so a standalone
process can export one too.
"""

import asyncio
import base64
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import httpx
import uvicorn
from starlette.types import Receive, Scope, Send

from switchyard.bootstrap import Bootstrap
from switchyard.config import HOST, Settings
from switchyard.errors import InvalidHostEventError
from switchyard.logging import get_logger

logger = get_logger(__name__)

# Content types sent back as text; everything else is base64-encoded
TEXT_CONTENT_TYPES = ("text/", "application/json", "application/javascript", "application/xml")


class Transport(str, Enum):
    """How the process receives requests."""

    STANDALONE = "standalone"
    SERVERLESS = "serverless"


def select_transport(settings: Settings) -> Transport:
    """Pick the transport for this process."""
    if settings.run_standalone or not settings.serverless:
        return Transport.STANDALONE
    return Transport.SERVERLESS


def serve(bootstrap: Bootstrap) -> Transport:
    """Run the selected transport.

    Standalone blocks until the server stops. Serverless returns at once
    without binding anything.

    Returns:
        The transport that was selected.
    """
    transport = select_transport(bootstrap.settings)
    if transport is Transport.STANDALONE:
        run_standalone(bootstrap)
    else:
        logger.info("serverless_mode", port_bound=False)
    return transport


def run_standalone(bootstrap: Bootstrap) -> None:
    """Bind HOST:PORT and serve until stopped.

    Raises:
        SystemExit: With status 1 when a dev tooling fatal fault stopped the server.
    """
    settings = bootstrap.settings
    config = uvicorn.Config(
        bootstrap,
        host=HOST,
        port=settings.port,
        lifespan="on",
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(config)

    def stop_on_fatal(fault: Exception) -> None:
        server.should_exit = True

    bootstrap.add_fatal_listener(stop_on_fatal)

    logger.info("serving", host=HOST, port=settings.port)
    server.run()

    if bootstrap.fatal_fault is not None:
        logger.error("server_stopped_on_fatal_fault", error=str(bootstrap.fatal_fault))
        raise SystemExit(1)


class ServerlessHandler:
    """Per-request entry point for serverless hosts.

    Args:
        bootstrap: The bootstrap every request is dispatched through.
    """

    def __init__(self, bootstrap: Bootstrap):
        self.bootstrap = bootstrap
        self._runner: asyncio.Runner | None = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.bootstrap(scope, receive, send)

    def handle(self, event: dict[str, Any], context: Any = None) -> dict[str, Any]:
        """Handle one proxy event synchronously.

        A single event loop is kept across invocations so the wiring done on
        the first request is reused by later ones.
        """
        if self._runner is None:
            self._runner = asyncio.Runner()
        return self._runner.run(self.dispatch(event))

    async def dispatch(self, event: dict[str, Any]) -> dict[str, Any]:
        """Translate a proxy event into a request and the response back into a result."""
        request = parse_event(event)

        transport = httpx.ASGITransport(
            app=self.bootstrap,
            raise_app_exceptions=False,
            client=(request["source_ip"], 0),
        )
        async with httpx.AsyncClient(transport=transport, base_url="http://serverless") as client:
            response = await client.request(
                request["method"],
                request["url"],
                headers=request["headers"],
                content=request["body"],
            )

        return build_result(response, payload_v2=request["payload_v2"])

    def close(self) -> None:
        """Close the event loop kept for proxy events."""
        if self._runner is not None:
            self._runner.close()
            self._runner = None


def parse_event(event: dict[str, Any]) -> dict[str, Any]:
    """Extract method, URL, headers and body from a proxy event.

    Raises:
        InvalidHostEventError: If the event carries no HTTP method.
    """
    if not isinstance(event, dict):
        raise InvalidHostEventError("Serverless event must be a mapping")

    request_context = event.get("requestContext") or {}
    payload_v2 = event.get("version") == "2.0"

    if payload_v2:
        http_context = request_context.get("http") or {}
        method = http_context.get("method")
        path = event.get("rawPath") or "/"
        query = event.get("rawQueryString") or ""
        source_ip = http_context.get("sourceIp")
    else:
        method = event.get("httpMethod")
        path = event.get("path") or "/"
        multi_query = event.get("multiValueQueryStringParameters")
        if multi_query:
            query = urlencode(multi_query, doseq=True)
        else:
            query = urlencode(event.get("queryStringParameters") or {})
        source_ip = (request_context.get("identity") or {}).get("sourceIp")

    if not method:
        raise InvalidHostEventError("Serverless event has no HTTP method")

    headers = {
        name.lower(): value
        for name, value in (event.get("headers") or {}).items()
        if name.lower() != "content-length"
    }
    cookies = event.get("cookies")
    if cookies:
        headers["cookie"] = "; ".join(cookies)

    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        body_bytes = base64.b64decode(body)
    else:
        body_bytes = body.encode("utf-8")

    return {
        "method": method.upper(),
        "url": f"{path}?{query}" if query else path,
        "headers": headers,
        "body": body_bytes,
        "source_ip": source_ip or "127.0.0.1",
        "payload_v2": payload_v2,
    }


def build_result(response: httpx.Response, payload_v2: bool = False) -> dict[str, Any]:
    """Translate an HTTP response into a proxy result."""
    content_type = response.headers.get("content-type", "")
    is_text = not content_type or content_type.startswith(TEXT_CONTENT_TYPES)

    if is_text:
        body = response.text
    else:
        body = base64.b64encode(response.content).decode("ascii")

    result: dict[str, Any] = {
        "statusCode": response.status_code,
        "headers": {
            name: value
            for name, value in response.headers.items()
            if name != "set-cookie"
        },
        "body": body,
        "isBase64Encoded": not is_text,
    }

    set_cookies = response.headers.get_list("set-cookie")
    if payload_v2:
        if set_cookies:
            result["cookies"] = set_cookies
    else:
        multi_value: dict[str, list[str]] = {}
        for name, value in response.headers.multi_items():
            multi_value.setdefault(name, []).append(value)
        result["multiValueHeaders"] = multi_value

    return result
