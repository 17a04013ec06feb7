"""Pure ASGI security headers middleware.

Adds common security headers to every HTTP response (clickjacking, MIME
sniffing, referrer leakage, cross-origin isolation). Headers a route already
set are left alone.

HSTS and Content-Security-Policy are only sent in production: the dev
server's injected inline preamble would be blocked by the CSP.
"""

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

BASE_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}

PRODUCTION_HEADERS: dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; font-src 'self' https: data:; "
        "frame-ancestors 'self'; img-src 'self' data:; object-src 'none'; "
        "script-src 'self'; style-src 'self' https: 'unsafe-inline'"
    ),
}


class SecurityHeadersMiddleware:
    """Inject security headers on http.response.start.

    Args:
        app: The ASGI application.
        production: If True, also send HSTS and Content-Security-Policy.
    """

    def __init__(self, app: ASGIApp, production: bool = False):
        self.app = app
        self.headers = dict(BASE_HEADERS)
        if production:
            self.headers.update(PRODUCTION_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                resp_headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    if name not in resp_headers:
                        resp_headers.append(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)
