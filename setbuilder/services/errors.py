"""Error taxonomy for credential acquisition and catalog search.

Every failure raised by the catalog core is a ``CatalogError``. ``retryable``
tells the caller whether trying again (after backoff, or after a fresh token)
can succeed without operator intervention.
"""

import httpx


class CatalogError(Exception):
    """Base class for catalog and credential failures."""

    retryable = False


class InvalidRequestConfigurationError(CatalogError):
    """The request URL or parameters could not be built."""


class NetworkFailureError(CatalogError):
    """No response was received (connection, timeout, protocol failure)."""

    retryable = True

    def __init__(self, cause: BaseException):
        super().__init__(f"Network error: {describe_http_error(cause)}")
        self.cause = cause


class UnauthorizedError(CatalogError):
    """The token was rejected; the cached token has been invalidated."""

    retryable = True

    def __init__(self) -> None:
        super().__init__("Authentication failed")


class InvalidClientCredentialsError(CatalogError):
    """The token endpoint rejected the app's client id/secret."""

    def __init__(self, message: str):
        super().__init__(f"Invalid client: {message}")
        self.message = message


class TokenAcquisitionError(CatalogError):
    """The token endpoint answered with an unexpected status."""

    retryable = True

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Token error (HTTP {status_code}): {body}")
        self.status_code = status_code
        self.body = body


class RateLimitedError(CatalogError):
    """The API asked us to slow down."""

    retryable = True

    def __init__(self, retry_after: float | None = None):
        super().__init__("Rate limit exceeded")
        self.retry_after = retry_after


class ServerError(CatalogError):
    """Any other unexpected response status from the catalog."""

    retryable = True

    def __init__(self, status_code: int):
        super().__init__(f"Server error occurred (HTTP {status_code})")
        self.status_code = status_code


class DecodingFailureError(CatalogError):
    """A response body did not have the expected shape."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Failed to decode response: {type(cause).__name__}")
        self.cause = cause


class AuthorizationCancelledError(CatalogError):
    """The user dismissed or declined the consent step. No token was obtained."""

    def __init__(self, reason: str = "Authorization cancelled by user"):
        super().__init__(reason)


class InvalidCallbackError(CatalogError):
    """The consent callback URL carried no usable authorization code."""


def describe_http_error(e: BaseException) -> str:
    """Return a description of an HTTP failure that never leaks credentials.

    httpx exceptions can embed request URLs and headers in their string
    representations, so only the failure kind is reported.
    """
    if isinstance(e, httpx.TimeoutException):
        return "request timed out"
    if isinstance(e, httpx.ConnectError):
        return "connection failed"
    if isinstance(e, httpx.HTTPStatusError):
        return f"HTTP {e.response.status_code}"
    return type(e).__name__
