"""
Shopify Admin API integration.
"""

from promolens.integrations.shopify.client import (
    ShopifyAdminClient,
    ShopifyPage,
    parse_next_page_info,
)
from promolens.integrations.shopify.exceptions import (
    ShopifyAPIError,
    ShopifyAuthenticationError,
    ShopifyConnectionError,
    ShopifyNotConfiguredError,
    ShopifyTimeoutError,
)

__all__ = [
    # Client
    "ShopifyAdminClient",
    "ShopifyPage",
    "parse_next_page_info",
    # Exceptions
    "ShopifyAPIError",
    "ShopifyAuthenticationError",
    "ShopifyConnectionError",
    "ShopifyNotConfiguredError",
    "ShopifyTimeoutError",
]
