"""Error taxonomy shared by the store, the collector and the HTTP layer."""


class MetricsError(Exception):
    """Base class for every error raised by gateway_metrics."""


class StorageError(MetricsError):
    """Raised when the persistence layer fails during a write or query.

    Always chained (``raise ... from exc``) to the underlying SQLAlchemy
    error, so the original cause stays in the traceback.
    """


class APIError(MetricsError):
    """An error that maps directly to an HTTP status code.

    Rendered as ``{"error": message}`` under ``/api/`` and as plain text
    for static requests.
    """

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(APIError):
    """Unknown API route or missing static file."""

    status_code = 404
    default_message = "Not found"


class ForbiddenError(APIError):
    """Disallowed CORS origin or a path escaping the static root."""

    status_code = 403
    default_message = "Forbidden"


class MethodNotAllowedError(APIError):
    """A write method sent to the read-only static handler."""

    status_code = 405
    default_message = "Method not allowed"
