"""Hosting provider API exceptions."""

from typing import Optional


class HostAPIError(Exception):
    """Base exception for hosting provider API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize host API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @property
    def transient(self) -> bool:
        """Whether the request is likely to succeed if repeated.

        Network errors carry no status code and are treated as transient,
        as are 5xx responses. Other 4xx responses are permanent.
        """
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in (408, 429)


class HostAuthenticationError(HostAPIError):
    """Authentication error with the host API (401/403)."""

    @property
    def transient(self) -> bool:
        return False


class HostRateLimitError(HostAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    @property
    def transient(self) -> bool:
        return True


class HostNotFoundError(HostAPIError):
    """Resource not found error."""

    @property
    def transient(self) -> bool:
        return False


class HostTimeoutError(HostAPIError):
    """Request did not complete within the configured timeout."""

    @property
    def transient(self) -> bool:
        return True
