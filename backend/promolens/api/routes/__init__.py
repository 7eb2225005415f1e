# API routes
from promolens.api.routes import health
from promolens.api.routes import metrics
from promolens.api.routes import anomalies
from promolens.api.routes import export
from promolens.api.routes import ingest_shopify
from promolens.api.routes import ingest_ga4

__all__ = ["health", "metrics", "anomalies", "export", "ingest_shopify", "ingest_ga4"]
