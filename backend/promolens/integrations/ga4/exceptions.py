"""
GA4 Measurement Protocol exceptions.
"""

from typing import Optional, Dict, Any


class GA4APIError(Exception):
    """Base exception for GA4 Measurement Protocol errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class GA4NotConfiguredError(GA4APIError):
    """Raised when measurement id or API secret is missing."""

    def __init__(self, message: str = "GA4 credentials not configured", **kwargs):
        super().__init__(message, **kwargs)


class GA4AuthenticationError(GA4APIError):
    """Raised when the API secret is rejected (401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed - API secret may be invalid",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class GA4ConnectionError(GA4APIError):
    """Raised when the collection endpoint cannot be reached."""

    def __init__(self, message: str = "Connection error - unable to reach GA4", **kwargs):
        super().__init__(message, **kwargs)


class GA4TimeoutError(GA4APIError):
    """Raised when a request times out."""

    def __init__(self, message: str = "Request to GA4 timed out", **kwargs):
        super().__init__(message, **kwargs)
