"""Error definitions.

Two families live here:
- ApiError and subclasses: raised by routes for expected client-facing failures.
  The terminal error handler maps them to {"message": ...} with their status.
- BootstrapError and subclasses: faults of the bootstrap itself (wiring,
  content mounting, dev tooling). These never reach clients verbatim.
"""


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        status_code: HTTP status code
        message: Human-readable error message (sent to the client)
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, message: str = "Not Found"):
        super().__init__(404, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(400, message)


class BootstrapError(Exception):
    """Base exception for bootstrap faults."""


class InitializationError(BootstrapError):
    """Wiring the application failed.

    The coordinator resets to NOT_STARTED before raising, so a later
    request retries the whole sequence.
    """


class ContentMountError(BootstrapError):
    """A content strategy could not be mounted."""


class StaticDirectoryMissingError(ContentMountError):
    """The prebuilt asset directory does not exist."""


class DevServerError(ContentMountError):
    """The frontend dev server failed a request."""

    status_code = 502


class DevServerUnavailableError(DevServerError):
    """The frontend dev server could not be reached at mount time."""


class DevToolingFatalError(BootstrapError):
    """The dev server went away after it was mounted.

    This is the one fault class the standalone server treats as fatal:
    it stops serving instead of handing out broken pages.
    """

    status_code = 502


class InvalidHostEventError(ValueError):
    """A serverless host delivered an event that is not an HTTP request."""
