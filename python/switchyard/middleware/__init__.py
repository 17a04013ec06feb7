"""Middleware modules for the Switchyard bootstrap."""

from switchyard.middleware.observer import ResponseObserverMiddleware
from switchyard.middleware.request_id import REQUEST_ID_HEADER
from switchyard.middleware.security_headers import SecurityHeadersMiddleware

__all__ = ["ResponseObserverMiddleware", "SecurityHeadersMiddleware", "REQUEST_ID_HEADER"]
