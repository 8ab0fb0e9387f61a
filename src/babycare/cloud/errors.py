"""
Cloud analysis failures.

Every way the cloud path can fail is one of these. The orchestrator treats
all of them except CloudDisabledError as "fall back to local analysis"; the
user_message is what a presentation layer would show if it chose to.
"""
from datetime import datetime
from typing import Optional


class CloudError(RuntimeError):
    """Base class for anything that stops a cloud analysis from completing."""

    user_message = "Cloud analysis is unavailable right now."


class CloudDisabledError(CloudError):
    """Raised when cloud analysis is switched off or not allowed on this network."""

    user_message = "Cloud analysis is turned off."


class CloudInsufficientDataError(CloudError):
    """Raised when there is nothing to send for analysis."""

    user_message = "Not enough data for cloud analysis yet."


class InvalidCredentialError(CloudError):
    """Raised on HTTP 401 or when no API key is configured."""

    user_message = "The cloud analysis API key is missing or invalid."


class CloudNetworkError(CloudError):
    """Raised when the service could not be reached."""

    user_message = "Could not reach the cloud analysis service."


class CloudServerError(CloudError):
    """Raised on a 5xx response."""

    user_message = "The cloud analysis service had a problem."

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(CloudError):
    """Raised on HTTP 429 or when the local usage limiter blocks a request."""

    user_message = "Cloud analysis limit reached. Try again later."

    def __init__(self, message: str, retry_after: Optional[datetime] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CloudTimeoutError(CloudError):
    """Raised when the request exceeded the configured timeout."""

    user_message = "Cloud analysis took too long."


class CloudResponseError(CloudError):
    """Raised for malformed replies and any other unexpected API failure."""

    user_message = "Cloud analysis returned an unexpected answer."
