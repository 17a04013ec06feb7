"""Switchyard: one request-handling process, standalone or serverless."""

from switchyard.bootstrap import Bootstrap, create_bootstrap
from switchyard.transport import ServerlessHandler, Transport, select_transport, serve

__all__ = [
    "Bootstrap",
    "ServerlessHandler",
    "Transport",
    "create_bootstrap",
    "select_transport",
    "serve",
]
