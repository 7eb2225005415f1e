"""
GA4 Measurement Protocol client.

Sends server-side events (purchases with coupon tracking) to GA4.

Documentation: https://developers.google.com/analytics/devguides/collection/protocol/ga4

SECURITY: The API secret travels as a query parameter; request URLs
must never be logged.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from promolens.config.settings import ConnectorSettings
from promolens.integrations.ga4.exceptions import (
    GA4APIError,
    GA4AuthenticationError,
    GA4ConnectionError,
    GA4NotConfiguredError,
    GA4TimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.google-analytics.com"
DEFAULT_TIMEOUT_SECONDS = 10.0


class GA4MeasurementClient:
    """Async client for the GA4 Measurement Protocol collect endpoint."""

    def __init__(
        self,
        settings: ConnectorSettings,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GA4 client.

        Args:
            settings: Connector settings holding measurement id and API secret
            base_url: Collection host
            timeout: Request timeout in seconds
            transport: Optional httpx transport override

        Raises:
            GA4NotConfiguredError: If measurement id or API secret is missing
        """
        if not settings.ga4_configured:
            raise GA4NotConfiguredError()

        self.measurement_id = settings.ga4_measurement_id
        self._api_secret = settings.ga4_api_secret
        self.base_url = base_url.rstrip("/")

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "GA4MeasurementClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def send_event(
        self,
        name: str,
        params: Dict[str, Any],
        client_id: str,
        user_id: Optional[str] = None,
    ) -> None:
        """
        Send a single event.

        Raises:
            GA4APIError: On non-2xx responses or transport failures
        """
        payload: Dict[str, Any] = {
            "client_id": client_id,
            "events": [{"name": name, "params": params}],
        }
        if user_id:
            payload["user_id"] = user_id

        try:
            response = await self._client.post(
                f"{self.base_url}/mp/collect",
                params={"measurement_id": self.measurement_id, "api_secret": self._api_secret},
                json=payload,
            )
        except httpx.TimeoutException:
            logger.error("GA4 request timeout", extra={"event_name": name})
            raise GA4TimeoutError()
        except httpx.RequestError as e:
            logger.error(
                "GA4 connection error",
                extra={"event_name": name, "error": type(e).__name__},
            )
            raise GA4ConnectionError()

        if response.status_code in (401, 403):
            raise GA4AuthenticationError(status_code=response.status_code)

        if response.status_code >= 400:
            logger.error(
                "GA4 API error",
                extra={"event_name": name, "status_code": response.status_code},
            )
            raise GA4APIError(
                message=f"GA4 API error: {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug("GA4 event sent", extra={"event_name": name})

    async def send_purchase_event(
        self,
        client_id: str,
        transaction_id: str,
        value: float,
        currency: str = "USD",
        coupon: Optional[str] = None,
        items: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        """Send a purchase event, including the coupon when one was used."""
        params: Dict[str, Any] = {
            "transaction_id": transaction_id,
            "value": value,
            "currency": currency,
        }
        if coupon:
            params["coupon"] = coupon
        if items:
            params["items"] = items

        await self.send_event("purchase", params, client_id=client_id)

    async def test_connection(self) -> bool:
        """Send a test event; True if the endpoint accepted it."""
        try:
            await self.send_event(
                "test_event",
                {"test_parameter": "connection_test"},
                client_id=f"test_client_{int(time.time() * 1000)}",
            )
            return True
        except GA4APIError as e:
            logger.warning("GA4 connection test failed", extra={"error": e.message})
            return False
