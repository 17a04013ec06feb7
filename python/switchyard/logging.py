"""Structured logging for the bootstrap (structlog over stdlib logging).

Every event carries, when known:
- request_id: Correlation ID (X-Request-ID) of the request being served
- path: Raw request path (never includes query string)
- method: HTTP method
- timestamp / level / logger

Renderers:
- JSON lines (production default, LOG_JSON=true)
- structlog console output (development default)

Streams: records below ERROR are written to stdout, ERROR and above to stderr.
Library loggers (uvicorn, httpx) are routed through the same formatter.

Usage:
    from switchyard.logging import get_logger, configure_logging

    # Once per process, from the launcher (never on import)
    configure_logging(json_format=settings.json_logs)

    logger = get_logger(__name__)
    logger.info("dev_middleware_mounted", dev_server_url=url)
"""

import logging
import sys
from contextvars import ContextVar
from typing import TextIO

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)

# Event key -> request-scoped source
_CONTEXT_FIELDS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("path", path_var),
    ("method", method_var),
)

# Third-party loggers that only speak up for warnings
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: copy request context into the event.

    Fields passed explicitly to the log call are never overwritten.
    """
    for key, var in _CONTEXT_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


class _BelowLevelFilter(logging.Filter):
    """Pass only records strictly below a level."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _stream_handler(
    stream: TextIO,
    formatter: logging.Formatter,
    *,
    min_level: int = logging.NOTSET,
    below_level: int | None = None,
) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.setLevel(min_level)
    if below_level is not None:
        handler.addFilter(_BelowLevelFilter(below_level))
    return handler


def configure_logging(json_format: bool = True, cache_loggers: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_format: Render JSON lines; otherwise structlog's console renderer.
        cache_loggers: Cache bound loggers on first use. Tests disable this so
            structlog.testing.capture_logs reaches module-level loggers.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=cache_loggers,
    )

    # Stdlib records (uvicorn, httpx) get the same processors and renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(_stream_handler(sys.stdout, formatter, below_level=logging.ERROR))
    root_logger.addHandler(_stream_handler(sys.stderr, formatter, min_level=logging.ERROR))
    root_logger.setLevel(logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger (typically get_logger(__name__))."""
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request context for the current async context.

    Args:
        request_id: The request correlation ID.
        path: Raw request path (optional, no query string).
        method: HTTP method (optional).
    """
    request_id_var.set(request_id)
    if path is not None:
        path_var.set(path)
    if method is not None:
        method_var.set(method)


def clear_request_context() -> None:
    """Drop request context once the response has been logged."""
    for _, var in _CONTEXT_FIELDS:
        var.set(None)


def get_request_id() -> str | None:
    """The request ID bound to the current async context, if any."""
    return request_id_var.get()
