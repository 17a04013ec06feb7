"""X-Request-ID resolution.

The response observer resolves one ID per request:
- A valid incoming X-Request-ID is kept (UUIDs lowercased)
- A missing, oversized or malformed one is replaced by a fresh UUID v4

The ID is bound into the logging context and echoed on the response.
"""

import re
import uuid

from starlette.datastructures import Headers

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128

# Opaque IDs: alphanumerics, dots, hyphens, underscores
TOKEN_PATTERN = re.compile(r"[A-Za-z0-9._-]+")
UUID_PATTERN = re.compile(r"[0-9a-fA-F]{8}(?:-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12}")


def is_valid_uuid(value: str) -> bool:
    """Whether value is a hyphenated UUID string (any version)."""
    return UUID_PATTERN.fullmatch(value) is not None


def is_valid_request_id(value: str) -> bool:
    """Whether an incoming request ID may be reused.

    Must be non-empty, at most 128 bytes (UTF-8) and either a UUID or an
    opaque token.
    """
    if not value or len(value.encode("utf-8")) > MAX_REQUEST_ID_LENGTH:
        return False
    return is_valid_uuid(value) or TOKEN_PATTERN.fullmatch(value) is not None


def normalize_request_id(value: str) -> str:
    """Lowercase UUIDs; opaque tokens are kept verbatim."""
    return value.lower() if is_valid_uuid(value) else value


def generate_request_id() -> str:
    return str(uuid.uuid4())


def resolve_request_id(headers: Headers) -> str:
    """The normalized incoming request ID, or a freshly generated one."""
    incoming = headers.get(REQUEST_ID_HEADER)
    if incoming and is_valid_request_id(incoming):
        return normalize_request_id(incoming)
    return generate_request_id()
