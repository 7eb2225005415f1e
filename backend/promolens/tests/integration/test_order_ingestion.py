"""
Tests for Shopify and GA4 order ingestion.

Tests:
- Shopify orders create customer, order and redemption rows
- Stored total is net of discount codes
- Duplicate deliveries are detected by external id
- Returning customers accumulate lifetime value
- GA4 purchase filtering and estimated discount
- GA4 event timestamps must be numeric

Run with: pytest backend/promolens/tests/integration/test_order_ingestion.py -v
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from promolens.config.settings import ConnectorSettings
from promolens.models import CodeRedemption, Customer, Order
from promolens.services.order_ingestion import (
    GA4WebhookPayload,
    OrderIngestionService,
    ShopifyOrderPayload,
)


def shopify_order(order_id=450789469, email="jane.doe@acme-store.com", **overrides):
    payload = {
        "id": order_id,
        "order_number": 1001,
        "email": email,
        "total_price": "110.00",
        "discount_codes": [{"code": "JANE10", "amount": "10.00"}],
        "created_at": "2024-05-01T10:00:00-04:00",
        "customer": {
            "id": 207119551,
            "email": email,
            "first_name": "Jane",
            "last_name": "Doe",
            "created_at": "2024-01-15T08:00:00-05:00",
        },
        "source_name": "web",
        "line_items": [{"id": 1, "title": "Tote bag", "quantity": 1, "price": "110.00"}],
    }
    payload.update(overrides)
    return ShopifyOrderPayload.model_validate(payload)


def ga4_payload(events, client_id="555.123"):
    return GA4WebhookPayload.model_validate({
        "measurement_id": "G-ABC123",
        "client_id": client_id,
        "events": events,
    })


def purchase_event(timestamp="1717236000000000", coupon="JANE10", value=50.0):
    params = [{"key": "currency", "value": {"string_value": "USD"}}]
    if coupon is not None:
        params.append({"key": "coupon", "value": {"string_value": coupon}})
    if value is not None:
        params.append({"key": "value", "value": {"double_value": value}})
    return {"event_name": "purchase", "event_timestamp": timestamp, "event_params": params}


@pytest.fixture
def service(db_session):
    return OrderIngestionService(db_session, ConnectorSettings(shopify_webhook_secret="s3cret"))


@pytest.fixture
def jane_code(make_owner, make_code):
    owner = make_owner(name="Jane Creator")
    return make_code(code="JANE10", owner=owner)


class TestShopifyIngestion:

    def test_creates_order_and_redemption(self, db_session, service, jane_code):
        result = service.ingest_shopify_order(shopify_order())

        assert result.processed is True
        assert result.duplicate is False
        assert result.promo_code_used is True
        assert result.external_id == "shopify_450789469"

        order = db_session.query(Order).filter(Order.id == result.order_id).one()
        assert order.total == Decimal("100.00")
        assert order.discount_value == Decimal("10.00")
        assert order.coupon == "JANE10"
        assert order.channel == "web"
        assert order.owner_id == jane_code.owner_id

        redemption = db_session.query(CodeRedemption).filter(
            CodeRedemption.order_id == order.id
        ).one()
        assert redemption.code_id == jane_code.id
        # 10:00 at -04:00 is 14:00 UTC
        assert redemption.created_at.replace(tzinfo=None) == datetime(2024, 5, 1, 14, 0)

    def test_new_customer_uses_order_time_as_first_order(self, db_session, service, jane_code):
        result = service.ingest_shopify_order(shopify_order())

        customer = db_session.query(Customer).filter(Customer.id == result.customer_id).one()
        assert customer.email == "jane.doe@acme-store.com"
        assert customer.first_name == "Jane"
        assert customer.lifetime_value == Decimal("110.00")
        assert customer.first_order_at.replace(tzinfo=None) == datetime(2024, 5, 1, 14, 0)

    def test_duplicate_delivery_is_not_written_twice(self, db_session, service, jane_code):
        first = service.ingest_shopify_order(shopify_order())
        second = service.ingest_shopify_order(shopify_order())

        assert first.processed is True
        assert second.processed is False
        assert second.duplicate is True
        assert db_session.query(Order).count() == 1
        assert db_session.query(CodeRedemption).count() == 1

    def test_returning_customer_accumulates_lifetime_value(self, db_session, service, jane_code):
        first = service.ingest_shopify_order(shopify_order())
        service.ingest_shopify_order(shopify_order(
            order_id=450789470,
            total_price="50.00",
            discount_codes=[],
            created_at="2024-05-20T09:00:00+00:00",
        ))

        customer = db_session.query(Customer).filter(Customer.id == first.customer_id).one()
        assert customer.lifetime_value == Decimal("160.00")
        assert customer.first_order_at.replace(tzinfo=None) == datetime(2024, 5, 1, 14, 0)
        assert db_session.query(Customer).count() == 1

    def test_unknown_coupon_creates_order_without_redemption(self, db_session, service):
        result = service.ingest_shopify_order(shopify_order(
            discount_codes=[{"code": "NOT-A-CODE", "amount": "5.00"}],
        ))

        assert result.processed is True
        assert result.promo_code_used is False
        order = db_session.query(Order).one()
        assert order.coupon == "NOT-A-CODE"
        assert order.owner_id is None
        assert db_session.query(CodeRedemption).count() == 0

    def test_multiple_discount_codes_first_attributed(self, db_session, service, jane_code):
        result = service.ingest_shopify_order(shopify_order(discount_codes=[
            {"code": "JANE10", "amount": "10.00"},
            {"code": "FREESHIP", "amount": "7.50"},
        ]))

        order = db_session.query(Order).filter(Order.id == result.order_id).one()
        assert order.discount_value == Decimal("17.50")
        assert order.total == Decimal("92.50")
        assert order.coupon == "JANE10"

    def test_missing_source_defaults_to_direct(self, db_session, service):
        service.ingest_shopify_order(shopify_order(source_name=None, discount_codes=[]))

        assert db_session.query(Order).one().channel == "Direct"

    def test_invalid_email_rejected_by_schema(self):
        with pytest.raises(ValidationError):
            shopify_order(email="not-an-email")


class TestGA4Ingestion:

    def test_only_complete_purchases_are_ingested(self, db_session, service, jane_code):
        payload = ga4_payload([
            purchase_event(),
            {"event_name": "page_view", "event_timestamp": "1717236000000001"},
            purchase_event(timestamp="1717236000000002", coupon=None),
            purchase_event(timestamp="1717236000000003", value=None),
        ])

        result = service.ingest_ga4_events(payload)

        assert result.events_received == 4
        assert result.orders_created == 1
        assert result.events_skipped == 3
        assert result.duplicates == 0

    def test_estimated_discount_and_anonymous_customer(self, db_session, service, jane_code):
        result = service.ingest_ga4_events(ga4_payload([purchase_event(value=50.0)]))

        order = db_session.query(Order).filter(Order.id == result.orders[0].order_id).one()
        assert order.external_id == "ga4_555.123_1717236000000000"
        assert order.discount_value == Decimal("10.00")
        assert order.total == Decimal("40.00")
        assert order.channel == "GA4"
        assert order.owner_id == jane_code.owner_id
        assert order.created_at.replace(tzinfo=None) == datetime(2024, 6, 1, 10, 0)

        customer = db_session.query(Customer).one()
        assert customer.email == "555.123@ga4.anonymous"
        assert customer.first_name == "GA4"
        assert customer.last_name == "User"

        assert db_session.query(CodeRedemption).one().code_id == jane_code.id

    def test_resent_events_are_duplicates(self, db_session, service, jane_code):
        service.ingest_ga4_events(ga4_payload([purchase_event()]))
        result = service.ingest_ga4_events(ga4_payload([purchase_event()]))

        assert result.orders_created == 0
        assert result.duplicates == 1
        assert db_session.query(Order).count() == 1

    def test_event_time_parsed_from_microseconds(self):
        payload = ga4_payload([purchase_event(timestamp="1717236000000000")])

        assert payload.events[0].occurred_at == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_non_numeric_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            ga4_payload([purchase_event(timestamp="not-a-number")])
