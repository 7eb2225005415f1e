"""
Shopify Admin API exceptions.
"""

from typing import Optional, Dict, Any


class ShopifyAPIError(Exception):
    """Base exception for Shopify Admin API errors."""

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


class ShopifyNotConfiguredError(ShopifyAPIError):
    """Raised when shop domain or access token is missing."""

    def __init__(self, message: str = "Shopify credentials not configured", **kwargs):
        super().__init__(message, **kwargs)


class ShopifyAuthenticationError(ShopifyAPIError):
    """Raised when the access token is rejected (401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed - access token may be invalid or revoked",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class ShopifyConnectionError(ShopifyAPIError):
    """Raised when the shop cannot be reached."""

    def __init__(self, message: str = "Connection error - unable to reach Shopify", **kwargs):
        super().__init__(message, **kwargs)


class ShopifyTimeoutError(ShopifyAPIError):
    """Raised when a request times out."""

    def __init__(self, message: str = "Request to Shopify timed out", **kwargs):
        super().__init__(message, **kwargs)
