"""
Shopify Admin REST API client.

This client handles:
- Order, customer and price rule reads
- Cursor pagination via the Link header (page_info)
- Connection checks against shop.json

Documentation: https://shopify.dev/docs/api/admin-rest

SECURITY: The access token must never be logged.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from promolens.config.settings import ConnectorSettings
from promolens.integrations.shopify.exceptions import (
    ShopifyAPIError,
    ShopifyAuthenticationError,
    ShopifyConnectionError,
    ShopifyNotConfiguredError,
    ShopifyTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
MAX_PAGE_SIZE = 250
ORDER_SYNC_FIELDS = (
    "id,order_number,email,total_price,discount_codes,created_at,"
    "customer,source_name,line_items"
)

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')


def parse_next_page_info(link_header: Optional[str]) -> Optional[str]:
    """Extract the page_info cursor of the rel="next" link, if any."""
    if not link_header:
        return None
    match = _NEXT_LINK_RE.search(link_header)
    if not match:
        return None
    return httpx.URL(match.group(1)).params.get("page_info")


@dataclass
class ShopifyPage:
    """One page of a list endpoint."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_info: Optional[str] = None

    @property
    def has_next_page(self) -> bool:
        return self.next_page_info is not None


class ShopifyAdminClient:
    """
    Async client for the Shopify Admin REST API.

    Credentials come from an injected ConnectorSettings; the client
    never reads the environment itself.
    """

    def __init__(
        self,
        settings: ConnectorSettings,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Shopify client.

        Args:
            settings: Connector settings holding shop domain and access token
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport override

        Raises:
            ShopifyNotConfiguredError: If shop domain or access token is missing
        """
        if not settings.shopify_configured:
            raise ShopifyNotConfiguredError()

        self.shop_domain = settings.shopify_shop_domain
        self.api_version = settings.shopify_api_version
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Shopify-Access-Token": settings.shopify_access_token,
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "ShopifyAdminClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Make an HTTP request to the Admin API.

        Raises:
            ShopifyAPIError: On API errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._client.request(method, url, params=clean_params)
        except httpx.TimeoutException as e:
            logger.error(
                "Shopify API timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise ShopifyTimeoutError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Shopify API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise ShopifyConnectionError(f"Connection error: {e}")

        if response.status_code in (401, 403):
            logger.error(
                "Shopify API authentication failed",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise ShopifyAuthenticationError(status_code=response.status_code)

        if response.status_code >= 400:
            try:
                error_body = response.json()
            except ValueError:
                error_body = {"raw": response.text[:500]}

            logger.error(
                "Shopify API error",
                extra={
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response": str(error_body)[:500],
                },
            )
            raise ShopifyAPIError(
                message=f"Shopify API error: {response.status_code}",
                status_code=response.status_code,
                response=error_body,
            )

        return response

    async def _list(
        self,
        endpoint: str,
        key: str,
        params: Dict[str, Any],
    ) -> ShopifyPage:
        response = await self._request("GET", endpoint, params=params)
        return ShopifyPage(
            items=response.json().get(key, []),
            next_page_info=parse_next_page_info(response.headers.get("link")),
        )

    async def fetch_orders(
        self,
        limit: int = 50,
        status: Optional[str] = None,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        fields: Optional[str] = None,
        page_info: Optional[str] = None,
    ) -> ShopifyPage:
        """
        Fetch one page of orders.

        When page_info is given, Shopify only accepts limit and fields;
        the other filters are carried by the cursor.
        """
        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE), "fields": fields}
        if page_info:
            params["page_info"] = page_info
        else:
            params.update({
                "status": status,
                "created_at_min": created_at_min,
                "created_at_max": created_at_max,
            })
        return await self._list("orders.json", "orders", params)

    async def fetch_customers(
        self,
        limit: int = 50,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        fields: Optional[str] = None,
        page_info: Optional[str] = None,
    ) -> ShopifyPage:
        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE), "fields": fields}
        if page_info:
            params["page_info"] = page_info
        else:
            params.update({"created_at_min": created_at_min, "created_at_max": created_at_max})
        return await self._list("customers.json", "customers", params)

    async def fetch_price_rules(
        self,
        limit: int = 50,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
        page_info: Optional[str] = None,
    ) -> ShopifyPage:
        """Price rules back discount codes in the Admin API."""
        params: Dict[str, Any] = {"limit": min(limit, MAX_PAGE_SIZE)}
        if page_info:
            params["page_info"] = page_info
        else:
            params.update({"created_at_min": created_at_min, "created_at_max": created_at_max})
        return await self._list("price_rules.json", "price_rules", params)

    async def test_connection(self) -> bool:
        """Return True if shop.json is reachable with the configured token."""
        try:
            await self._request("GET", "shop.json")
            return True
        except ShopifyAPIError as e:
            logger.warning(
                "Shopify connection test failed",
                extra={"shop_domain": self.shop_domain, "error": e.message},
            )
            return False

    async def sync_all_orders(self, created_at_min: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch every order, following rel="next" links until exhausted.

        Raises:
            ShopifyAPIError: If any page request fails
        """
        logger.info("Starting Shopify orders sync", extra={"shop_domain": self.shop_domain})

        orders: List[Dict[str, Any]] = []
        page = await self.fetch_orders(
            limit=MAX_PAGE_SIZE,
            status="any",
            created_at_min=created_at_min,
            fields=ORDER_SYNC_FIELDS,
        )
        orders.extend(page.items)

        while page.has_next_page:
            page = await self.fetch_orders(
                limit=MAX_PAGE_SIZE,
                fields=ORDER_SYNC_FIELDS,
                page_info=page.next_page_info,
            )
            orders.extend(page.items)
            logger.info("Fetched Shopify orders page", extra={"orders_so_far": len(orders)})

        logger.info(
            "Shopify orders sync completed",
            extra={"shop_domain": self.shop_domain, "total_orders": len(orders)},
        )
        return orders
