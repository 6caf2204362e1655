"""
Recipe Wizard - Error types.

Client side: every failure leaving RecipeApiClient is a RecipeApiError with a
machine-readable code. UI layers show a generic message for it.

Server side: the webhook proxy raises ProxyError subclasses; the web layer
turns them into the `{error, message, status, timestamp}` envelope.
"""


class RecipeApiError(Exception):
    """Typed failure from the recipe API service."""

    def __init__(
        self,
        message: str,
        status: int = 500,
        code: str | None = None,
        original_error: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.original_error = original_error

    def __repr__(self) -> str:
        return f"RecipeApiError({self.message!r}, status={self.status}, code={self.code!r})"


class ProxyError(Exception):
    """Base for webhook proxy failures. Subclasses fix status and public wording."""

    status_code = 500
    error = "Internal Server Error"
    public_message = "An unexpected error occurred. Please try again later."

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    @property
    def message(self) -> str:
        return self.public_message


class RequestValidationError(ProxyError):
    """Client sent a malformed body. The detail is safe to show."""

    status_code = 400
    error = "Bad Request"

    @property
    def message(self) -> str:
        return self.detail


class ServiceNotConfiguredError(ProxyError):
    status_code = 503
    error = "Service Unavailable"
    public_message = "Recipe creator service is not properly configured. Please contact support."


class UpstreamTimeoutError(ProxyError):
    status_code = 408
    error = "Request Timeout"
    public_message = "Request timed out. Please try again."


class UpstreamError(ProxyError):
    status_code = 502
    error = "Bad Gateway"
    public_message = "External service is currently unavailable. Please try again later."


class InvalidUpstreamResponseError(UpstreamError):
    """Upstream answered 2xx but the payload lacks the step's array."""

    @property
    def message(self) -> str:
        return self.detail
