"""
GA4 Measurement Protocol integration.
"""

from promolens.integrations.ga4.client import GA4MeasurementClient
from promolens.integrations.ga4.exceptions import (
    GA4APIError,
    GA4AuthenticationError,
    GA4ConnectionError,
    GA4NotConfiguredError,
    GA4TimeoutError,
)

__all__ = [
    "GA4MeasurementClient",
    "GA4APIError",
    "GA4AuthenticationError",
    "GA4ConnectionError",
    "GA4NotConfiguredError",
    "GA4TimeoutError",
]
