"""Pure ASGI response observer for request logging.

Wraps `send` so every message is forwarded unchanged while the observer
records what went out:
- Status code from http.response.start
- JSON body (API paths only, capped) from http.response.body

Exactly one `request_completed` line is emitted per HTTP request, after the
final body chunk has been sent:
- All requests: method, path, status_code, duration_ms
- API-prefixed paths with a JSON response: response_body (compact JSON),
  or response_body_truncated=True when the body exceeds the cap

Does NOT use BaseHTTPMiddleware: that would buffer streaming responses.

Middleware Ordering:
- Runs outermost, before the initialization gate, so requests rejected
  because wiring failed are logged too.
"""

import json
import time
from dataclasses import dataclass, field

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from switchyard.logging import clear_request_context, get_logger, set_request_context
from switchyard.middleware.request_id import REQUEST_ID_HEADER, resolve_request_id

logger = get_logger(__name__)

DEFAULT_MAX_BODY_BYTES = 64 * 1024


def is_api_path(path: str, api_prefix: str) -> bool:
    """Whether a path falls under the API prefix (the prefix itself included)."""
    return path == api_prefix or path.startswith(api_prefix + "/")


def is_json_content_type(content_type: str | None) -> bool:
    """Whether a content type denotes JSON (application/json, application/*+json)."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


@dataclass
class ResponseSnapshot:
    """What the observer saw of one response."""

    status_code: int | None = None
    capture_body: bool = False
    body: bytearray = field(default_factory=bytearray)
    truncated: bool = False

    def feed(self, chunk: bytes, limit: int) -> None:
        """Append a body chunk, giving up once the cap is exceeded."""
        if not self.capture_body or self.truncated or not chunk:
            return
        if len(self.body) + len(chunk) > limit:
            self.truncated = True
            self.body = bytearray()
            return
        self.body.extend(chunk)

    def compact_json(self) -> str | None:
        """Re-serialize the captured body as compact JSON.

        Returns None when nothing was captured or the body is not valid JSON.
        """
        if not self.capture_body or self.truncated or not self.body:
            return None
        try:
            payload = json.loads(self.body)
        except ValueError:
            return None
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class ResponseObserverMiddleware:
    """Observe each HTTP response and log it once.

    Args:
        app: The downstream ASGI application.
        api_prefix: Paths under this prefix get their JSON body logged.
        max_body_bytes: Largest response body that is logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        api_prefix: str = "/api",
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ):
        self.app = app
        self.api_prefix = api_prefix
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.monotonic()
        method = scope["method"]
        path = scope["path"]
        request_id = resolve_request_id(Headers(scope=scope))
        observe_body = is_api_path(path, self.api_prefix)

        snapshot = ResponseSnapshot()
        emitted = False

        def emit(status_code: int | None) -> None:
            nonlocal emitted
            if emitted:
                return
            emitted = True

            fields = {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - start_time) * 1000, 2),
            }
            if observe_body:
                body = snapshot.compact_json()
                if body is not None:
                    fields["response_body"] = body
                elif snapshot.truncated:
                    fields["response_body_truncated"] = True

            # Drop the captured body as soon as it has been logged
            snapshot.body = bytearray()
            logger.info("request_completed", **fields)

        async def send_observed(message: Message) -> None:
            if message["type"] == "http.response.start":
                snapshot.status_code = message["status"]
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                headers[REQUEST_ID_HEADER] = request_id
                snapshot.capture_body = observe_body and is_json_content_type(
                    headers.get("content-type")
                )
                await send(message)
                return

            if message["type"] == "http.response.body":
                snapshot.feed(message.get("body", b""), self.max_body_bytes)
                await send(message)
                if not message.get("more_body", False):
                    emit(snapshot.status_code)
                return

            await send(message)

        set_request_context(request_id, path=path, method=method)
        try:
            await self.app(scope, receive, send_observed)
        except Exception:
            emit(snapshot.status_code or 500)
            raise
        finally:
            # Client went away before the final chunk: still log once
            emit(snapshot.status_code)
            clear_request_context()
