"""
GA4 purchase event webhook.

GA4 does not sign payloads; the body is schema-validated instead.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from promolens.api.dependencies import get_connector_settings, get_ingestion_service
from promolens.api.routes.metrics import store_unavailable
from promolens.api.schemas.ingest import EndpointReadyResponse, GA4IngestResponse
from promolens.config.settings import ConnectorSettings
from promolens.repositories.promo_repo import PromoStoreError
from promolens.services.order_ingestion import GA4WebhookPayload, OrderIngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest/ga4", tags=["ingest"])


@router.post("", response_model=GA4IngestResponse)
async def ingest_ga4_events(
    request: Request,
    service: OrderIngestionService = Depends(get_ingestion_service),
):
    body = await request.body()
    try:
        payload = GA4WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Invalid GA4 payload", extra={"error_count": e.error_count()})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Invalid GA4 event data",
                "details": e.errors(include_url=False, include_input=False, include_context=False),
            },
        )

    try:
        result = service.ingest_ga4_events(payload)
    except PromoStoreError as e:
        raise store_unavailable(e)

    return GA4IngestResponse(
        message="GA4 events processed successfully",
        events_received=result.events_received,
        orders_created=result.orders_created,
        duplicates=result.duplicates,
        events_skipped=result.events_skipped,
    )


@router.get("", response_model=EndpointReadyResponse)
async def ga4_endpoint_status(
    settings: ConnectorSettings = Depends(get_connector_settings),
):
    return EndpointReadyResponse(
        message="GA4 webhook endpoint ready",
        methods=["POST"],
        description="Accepts GA4 purchase events with coupon tracking",
        configured=settings.ga4_configured,
    )
