"""
Shopify order webhook.

SECURITY: Every request MUST carry a valid X-Shopify-Hmac-Sha256
signature over the raw body. The signing secret comes from
ConnectorSettings and is never logged.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from promolens.api.dependencies import get_connector_settings, get_ingestion_service
from promolens.api.routes.metrics import store_unavailable
from promolens.api.schemas.ingest import EndpointReadyResponse, ShopifyIngestResponse
from promolens.config.settings import ConnectorSettings
from promolens.repositories.promo_repo import PromoStoreError
from promolens.services.order_ingestion import (
    InvalidWebhookSignatureError,
    OrderIngestionService,
    ShopifyOrderPayload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest/shopify", tags=["ingest"])


@router.post("", response_model=ShopifyIngestResponse)
async def ingest_shopify_order(
    request: Request,
    service: OrderIngestionService = Depends(get_ingestion_service),
):
    """
    Handle an orders/create webhook.

    Returns 401 on a missing or invalid signature, 400 on an invalid
    body and 503 if the signing secret is not configured.
    """
    if not service.settings.shopify_webhook_secret:
        logger.error("Shopify webhook secret not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured",
        )

    body = await request.body()
    try:
        service.verify_signature(body, request.headers.get("X-Shopify-Hmac-Sha256"))
    except InvalidWebhookSignatureError:
        logger.warning(
            "Invalid Shopify webhook signature",
            extra={"shop_domain": request.headers.get("X-Shopify-Shop-Domain")},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid HMAC signature",
        )

    try:
        payload = ShopifyOrderPayload.model_validate_json(body)
    except ValidationError as e:
        logger.warning("Invalid Shopify order payload", extra={"error_count": e.error_count()})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Invalid order data",
                "details": e.errors(include_url=False, include_input=False, include_context=False),
            },
        )

    try:
        result = service.ingest_shopify_order(payload)
    except PromoStoreError as e:
        raise store_unavailable(e)

    if result.duplicate:
        return ShopifyIngestResponse(message="Order already processed", duplicate=True)

    return ShopifyIngestResponse(
        message="Order processed successfully",
        order_id=result.order_id,
        customer_id=result.customer_id,
        promo_code_used=result.promo_code_used,
    )


@router.get("", response_model=EndpointReadyResponse)
async def shopify_endpoint_status(
    settings: ConnectorSettings = Depends(get_connector_settings),
):
    return EndpointReadyResponse(
        message="Shopify webhook endpoint ready",
        methods=["POST"],
        description="Accepts Shopify order webhooks for promo code tracking",
        configured=bool(settings.shopify_webhook_secret),
    )
