"""Error taxonomy for model calls.

Failures fall into three groups:
- Fatal to the run: authentication/authorization (401/403)
- Recoverable by backoff: rate limiting (429), transport errors, 5xx, timeouts
- Recoverable by fallback: unparseable model output (not an exception at all)
"""

from typing import Any, Optional

AUTH_STATUS_CODES = {401, 403}
RATE_LIMIT_STATUS_CODE = 429


class ExtractorError(Exception):
    """Base class for all report extractor errors."""


class ConfigError(ExtractorError):
    """Invalid or missing configuration."""


class ModelCallError(ExtractorError):
    """A call to the remote model endpoint failed."""

    is_auth_error = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class AuthError(ModelCallError):
    """Credentials were rejected. Aborts the whole run."""

    is_auth_error = True

    def __init__(self, message: str = "Authentication error", status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)


class RateLimitError(ModelCallError):
    """The endpoint reported that the request budget was exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
    ):
        super().__init__(
            message, status_code=RATE_LIMIT_STATUS_CODE, retry_after=retry_after
        )


class TaskTimeoutError(ModelCallError):
    """A task did not finish within the configured per-task timeout."""


def get_error_status(error: Optional[BaseException]) -> Optional[int]:
    """Get the HTTP status code carried by an error, if any.

    Looks at ``status_code``, ``status`` and ``response.status_code`` so that
    errors raised by third-party HTTP libraries classify the same way.
    """
    if error is None:
        return None

    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response: Any = getattr(error, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value

    return None


def is_auth_error(error: Optional[BaseException]) -> bool:
    """Check if an error is an authentication error (401 or 403)."""
    if error is None:
        return False
    if getattr(error, "is_auth_error", False):
        return True
    return get_error_status(error) in AUTH_STATUS_CODES


def is_rate_limit_error(error: Optional[BaseException]) -> bool:
    """Check if an error is a rate limit error (429)."""
    if error is None:
        return False
    if isinstance(error, RateLimitError):
        return True
    return get_error_status(error) == RATE_LIMIT_STATUS_CODE


def format_api_error(error: Optional[BaseException]) -> str:
    """Format an API error into a user-facing message."""
    if error is None:
        return "An unknown error occurred"

    if is_auth_error(error):
        return "Your API key is invalid. Please re-enter a valid key."

    if is_rate_limit_error(error):
        return "Rate limit exceeded. Please wait a moment and try again."

    message = str(error)
    if message:
        return message

    return "An error occurred while communicating with the API"
