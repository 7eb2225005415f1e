"""
Order ingestion from Shopify order webhooks and GA4 purchase events.

Turns raw webhook payloads into normalized Customer, Order and
CodeRedemption rows. The metrics layer only ever reads those rows.

Idempotency is best-effort: an order whose source-prefixed external_id
already exists is reported as a duplicate and not written again.

SECURITY: Shopify webhooks MUST be HMAC-verified before ingestion.
Never log webhook secrets or raw customer payloads.
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from promolens.config.settings import ConnectorSettings
from promolens.metrics.kpi_definitions import to_utc
from promolens.models.promo import Customer
from promolens.repositories.promo_repo import PromoRepository

logger = logging.getLogger(__name__)

# GA4 purchase events carry no discount amount; assume 20% on average.
GA4_ESTIMATED_DISCOUNT_RATE = Decimal("0.2")
GA4_CHANNEL = "GA4"
DEFAULT_CHANNEL = "Direct"


# =============================================================================
# Exceptions
# =============================================================================

class IngestionError(Exception):
    """Base exception for ingestion errors."""
    pass


class InvalidWebhookSignatureError(IngestionError):
    """Webhook HMAC signature is missing or does not match."""
    pass


class InvalidPayloadError(IngestionError):
    """Webhook body is not valid JSON or fails schema validation."""
    pass


# =============================================================================
# Payload schemas
# =============================================================================

class ShopifyDiscountCode(BaseModel):
    code: str
    amount: Decimal


class ShopifyCustomerPayload(BaseModel):
    id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime


class ShopifyLineItem(BaseModel):
    id: int
    title: str
    quantity: int
    price: Decimal


class ShopifyOrderPayload(BaseModel):
    """Subset of the Shopify orders/create webhook body that ingestion reads."""

    id: int
    order_number: int
    email: EmailStr
    total_price: Decimal
    discount_codes: List[ShopifyDiscountCode] = Field(default_factory=list)
    created_at: datetime
    customer: ShopifyCustomerPayload
    source_name: Optional[str] = None
    line_items: List[ShopifyLineItem] = Field(default_factory=list)


class GA4ParamValue(BaseModel):
    string_value: Optional[str] = None
    double_value: Optional[float] = None
    int_value: Optional[int] = None


class GA4EventParam(BaseModel):
    key: str
    value: GA4ParamValue


class GA4Event(BaseModel):
    """One exported GA4 event. event_timestamp is microseconds since epoch."""

    event_name: str
    event_timestamp: str = Field(pattern=r"^\d+$")
    user_pseudo_id: Optional[str] = None
    event_params: List[GA4EventParam] = Field(default_factory=list)

    def param(self, key: str) -> Optional[GA4ParamValue]:
        for p in self.event_params:
            if p.key == key:
                return p.value
        return None

    @property
    def occurred_at(self) -> datetime:
        return datetime.fromtimestamp(int(self.event_timestamp) / 1_000_000, tz=timezone.utc)


class GA4WebhookPayload(BaseModel):
    measurement_id: str
    client_id: str
    events: List[GA4Event]


# =============================================================================
# Results
# =============================================================================

@dataclass
class IngestionResult:
    """Outcome of ingesting one order."""
    external_id: str
    processed: bool
    duplicate: bool = False
    order_id: Optional[str] = None
    customer_id: Optional[str] = None
    promo_code_used: bool = False


@dataclass
class GA4IngestionResult:
    """Outcome of ingesting one GA4 payload."""
    events_received: int
    orders: List[IngestionResult] = field(default_factory=list)
    events_skipped: int = 0

    @property
    def orders_created(self) -> int:
        return sum(1 for r in self.orders if r.processed)

    @property
    def duplicates(self) -> int:
        return sum(1 for r in self.orders if r.duplicate)


# =============================================================================
# Signature verification
# =============================================================================

def verify_shopify_webhook(data: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify a Shopify webhook HMAC signature.

    Shopify signs the raw body with HMAC-SHA256 and sends the base64
    digest in X-Shopify-Hmac-Sha256.

    Args:
        data: Raw request body bytes
        hmac_header: X-Shopify-Hmac-Sha256 header value
        secret: Webhook signing secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not hmac_header or not secret:
        return False

    computed = hmac.new(secret.encode("utf-8"), data, hashlib.sha256)
    computed_digest = base64.b64encode(computed.digest()).decode("utf-8")

    # Constant-time comparison
    return hmac.compare_digest(computed_digest, hmac_header)


# =============================================================================
# Service
# =============================================================================

class OrderIngestionService:
    """
    Writes normalized order rows from connector payloads.

    Each Shopify order (or each GA4 payload) is committed as one unit.
    """

    def __init__(
        self,
        db_session: Session,
        settings: ConnectorSettings,
        repository: Optional[PromoRepository] = None,
    ):
        """
        Initialize ingestion service.

        Args:
            db_session: Database session
            settings: Connector credentials (webhook secret etc.)
            repository: Optional repository override
        """
        self.db = db_session
        self.settings = settings
        self.repository = repository or PromoRepository(db_session)

    def verify_signature(self, body: bytes, hmac_header: Optional[str]) -> None:
        """
        Raises:
            InvalidWebhookSignatureError: If the header is missing or wrong
        """
        if not verify_shopify_webhook(body, hmac_header, self.settings.shopify_webhook_secret):
            raise InvalidWebhookSignatureError("Invalid HMAC signature")

    def _find_or_create_customer(
        self,
        email: str,
        first_order_at: datetime,
        order_value: Decimal,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Customer:
        customer = self.repository.get_customer_by_email(email)
        if customer is None:
            return self.repository.create_customer(
                email=email,
                first_name=first_name,
                last_name=last_name,
                first_order_at=first_order_at,
                lifetime_value=order_value,
            )
        return self.repository.add_lifetime_value(customer, order_value)

    # -------------------------------------------------------------------------
    # Shopify
    # -------------------------------------------------------------------------

    def ingest_shopify_order(self, payload: ShopifyOrderPayload) -> IngestionResult:
        """
        Ingest one Shopify order.

        The stored order total is total_price minus the summed discount
        code amounts. Only the first discount code is attributed.

        Raises:
            PromoStoreError: If any read or write fails
        """
        external_id = f"shopify_{payload.id}"

        if self.repository.get_order_by_external_id(external_id) is not None:
            logger.info("Shopify order already processed", extra={"external_id": external_id})
            return IngestionResult(external_id=external_id, processed=False, duplicate=True)

        created_at = to_utc(payload.created_at)
        customer = self._find_or_create_customer(
            email=payload.email,
            first_order_at=created_at,
            order_value=payload.total_price,
            first_name=payload.customer.first_name,
            last_name=payload.customer.last_name,
        )

        discount_value = sum((dc.amount for dc in payload.discount_codes), Decimal("0"))
        coupon = payload.discount_codes[0].code if payload.discount_codes else None
        promo_code = self.repository.get_code_by_string(coupon) if coupon else None

        order = self.repository.create_order(
            external_id=external_id,
            customer_id=customer.id,
            total=payload.total_price - discount_value,
            discount_value=discount_value,
            coupon=coupon,
            channel=payload.source_name or DEFAULT_CHANNEL,
            owner_id=promo_code.owner_id if promo_code else None,
            created_at=created_at,
        )

        if promo_code is not None:
            self.repository.create_redemption(promo_code.id, order.id, created_at=created_at)

        self.repository.commit()

        logger.info(
            "Shopify order ingested",
            extra={
                "external_id": external_id,
                "order_id": order.id,
                "promo_code_used": promo_code is not None,
            },
        )
        return IngestionResult(
            external_id=external_id,
            processed=True,
            order_id=order.id,
            customer_id=customer.id,
            promo_code_used=promo_code is not None,
        )

    # -------------------------------------------------------------------------
    # GA4
    # -------------------------------------------------------------------------

    def ingest_ga4_events(self, payload: GA4WebhookPayload) -> GA4IngestionResult:
        """
        Ingest purchase events that carry both a coupon and a value.

        GA4 users are anonymous; they are stored as
        <client_id>@ga4.anonymous customers.

        Raises:
            PromoStoreError: If any read or write fails
        """
        result = GA4IngestionResult(events_received=len(payload.events))

        for event in payload.events:
            if event.event_name != "purchase":
                result.events_skipped += 1
                continue

            coupon_param = event.param("coupon")
            value_param = event.param("value")
            if (
                coupon_param is None or not coupon_param.string_value
                or value_param is None or not value_param.double_value
            ):
                result.events_skipped += 1
                continue

            result.orders.append(self._ingest_ga4_purchase(
                client_id=payload.client_id,
                event=event,
                coupon=coupon_param.string_value,
                order_value=Decimal(str(value_param.double_value)),
            ))

        self.repository.commit()

        logger.info(
            "GA4 events ingested",
            extra={
                "measurement_id": payload.measurement_id,
                "events_received": result.events_received,
                "orders_created": result.orders_created,
                "duplicates": result.duplicates,
                "events_skipped": result.events_skipped,
            },
        )
        return result

    def _ingest_ga4_purchase(
        self,
        client_id: str,
        event: GA4Event,
        coupon: str,
        order_value: Decimal,
    ) -> IngestionResult:
        external_id = f"ga4_{client_id}_{event.event_timestamp}"

        if self.repository.get_order_by_external_id(external_id) is not None:
            return IngestionResult(external_id=external_id, processed=False, duplicate=True)

        created_at = event.occurred_at
        customer = self._find_or_create_customer(
            email=f"{client_id}@ga4.anonymous",
            first_order_at=created_at,
            order_value=order_value,
            first_name="GA4",
            last_name="User",
        )

        promo_code = self.repository.get_code_by_string(coupon)
        discount_value = (order_value * GA4_ESTIMATED_DISCOUNT_RATE).quantize(Decimal("0.01"))

        order = self.repository.create_order(
            external_id=external_id,
            customer_id=customer.id,
            total=order_value - discount_value,
            discount_value=discount_value,
            coupon=coupon,
            channel=GA4_CHANNEL,
            owner_id=promo_code.owner_id if promo_code else None,
            created_at=created_at,
        )

        if promo_code is not None:
            self.repository.create_redemption(promo_code.id, order.id, created_at=created_at)

        return IngestionResult(
            external_id=external_id,
            processed=True,
            order_id=order.id,
            customer_id=customer.id,
            promo_code_used=promo_code is not None,
        )
