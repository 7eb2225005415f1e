"""
Application and connector configuration.

Settings are read from the process environment exactly once, at the
edge (app startup, job entry points), and then passed explicitly to the
collaborators that need them. Services and metric functions never read
os.environ themselves.

Usage:
    from promolens.config.settings import ConnectorSettings

    settings = ConnectorSettings.from_env()
    service = OrderIngestionService(db_session, settings)

SECURITY: status() exposes only booleans. Never log secret values.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

DEFAULT_SHOPIFY_API_VERSION = "2023-10"
DEFAULT_REPORTING_TIMEZONE = "UTC"


def normalize_database_url(database_url: str) -> str:
    """Convert Render/Heroku style postgres:// URLs to postgresql://."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class ConnectorSettings:
    """Credentials for the storefront and analytics connectors."""

    shopify_shop_domain: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_webhook_secret: Optional[str] = None
    shopify_api_version: str = DEFAULT_SHOPIFY_API_VERSION
    ga4_measurement_id: Optional[str] = None
    ga4_api_secret: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConnectorSettings":
        env = os.environ if environ is None else environ
        return cls(
            shopify_shop_domain=env.get("SHOPIFY_SHOP_DOMAIN") or None,
            shopify_access_token=env.get("SHOPIFY_ACCESS_TOKEN") or None,
            shopify_webhook_secret=env.get("SHOPIFY_WEBHOOK_SECRET") or None,
            shopify_api_version=env.get("SHOPIFY_API_VERSION") or DEFAULT_SHOPIFY_API_VERSION,
            ga4_measurement_id=env.get("GA4_MEASUREMENT_ID") or None,
            ga4_api_secret=env.get("GA4_API_SECRET") or None,
        )

    @property
    def shopify_configured(self) -> bool:
        return bool(self.shopify_shop_domain and self.shopify_access_token)

    @property
    def ga4_configured(self) -> bool:
        return bool(self.ga4_measurement_id and self.ga4_api_secret)

    def status(self) -> Dict[str, bool]:
        """Configuration status safe for logs and API responses."""
        return {
            "shopify_configured": self.shopify_configured,
            "shopify_webhook_secret_configured": bool(self.shopify_webhook_secret),
            "ga4_configured": self.ga4_configured,
        }

    def __repr__(self) -> str:
        return f"ConnectorSettings({self.status()!r})"


@dataclass(frozen=True)
class AppSettings:
    """Process-level settings for the API and background jobs."""

    database_url: Optional[str] = None
    reporting_timezone: str = DEFAULT_REPORTING_TIMEZONE
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppSettings":
        env = os.environ if environ is None else environ
        database_url = env.get("DATABASE_URL")
        cors = env.get("CORS_ORIGINS", "http://localhost:3000")
        return cls(
            database_url=normalize_database_url(database_url) if database_url else None,
            reporting_timezone=env.get("REPORTING_TIMEZONE") or DEFAULT_REPORTING_TIMEZONE,
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
        )
