"""
FastAPI application entry point for PromoLens.

Run locally:
    uvicorn promolens.main:app --reload
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from promolens import __version__
from promolens.api.dependencies import get_app_settings, get_connector_settings
from promolens.api.routes import health
from promolens.api.routes import metrics
from promolens.api.routes import anomalies
from promolens.api.routes import export
from promolens.api.routes import ingest_shopify
from promolens.api.routes import ingest_ga4

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting PromoLens API", extra={"version": __version__})

    app_settings = get_app_settings()
    connector_settings = get_connector_settings()

    # Booleans only; connector secrets are never logged
    logger.info("Connector configuration", extra=connector_settings.status())
    if not connector_settings.shopify_webhook_secret:
        logger.warning("SHOPIFY_WEBHOOK_SECRET not set. Shopify webhook will return 503.")

    if not app_settings.database_url:
        logger.error("DATABASE_URL is not set. Database-backed endpoints will return 503.")
        app.state.database_configured = False
    else:
        masked = app_settings.database_url.split("@")[-1]
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        app.state.database_configured = True

    logger.info(
        "Reporting timezone",
        extra={"reporting_timezone": app_settings.reporting_timezone},
    )

    yield

    logger.info("Shutting down PromoLens API")


app = FastAPI(
    title="PromoLens API",
    description="Promo code attribution, KPIs and anomaly detection",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_app_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(anomalies.router)
app.include_router(export.router)

# Webhooks (Shopify uses HMAC verification)
app.include_router(ingest_shopify.router)
app.include_router(ingest_ga4.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "promolens.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development",
    )
